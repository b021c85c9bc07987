"""
User profile models
"""
from django.db import models
from django.contrib.auth.models import User
from django.db.models.signals import post_save
from django.dispatch import receiver


class UserProfile(models.Model):
    """
    Contact details that Django's User does not carry

    Phone number is the primary login identifier; email works as well.
    """
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='profile',
        primary_key=True
    )

    phone = models.CharField(
        max_length=20,
        unique=True,
        null=True,
        blank=True,
        help_text="Login phone number"
    )

    avatar = models.URLField(
        max_length=500,
        blank=True,
        default='',
        help_text="Avatar image URL"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_profiles'
        verbose_name = 'User Profile'
        verbose_name_plural = 'User Profiles'

    def __str__(self):
        return f"Profile for {self.user.username}"


@receiver(post_save, sender=User)
def create_user_profile(sender, instance, created, **kwargs):
    """
    Auto-create an empty profile when a user is created
    """
    if created:
        UserProfile.objects.create(user=instance)


@receiver(post_save, sender=User)
def ensure_user_profile(sender, instance, **kwargs):
    """
    Ensure the profile exists (in case signal was missed)
    """
    if not hasattr(instance, 'profile'):
        UserProfile.objects.create(user=instance)
