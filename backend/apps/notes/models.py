"""
Notes, categories and tags

Every row belongs to exactly one user; a note references at most one
category and any number of tags owned by the same user.
"""
from django.contrib.auth.models import User
from django.db import models

from apps.common.models import TimestampedModel, UUIDModel, UserOwnedQuerySet


class Category(UUIDModel, TimestampedModel):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='note_categories')
    name = models.CharField(max_length=100)

    objects = UserOwnedQuerySet.as_manager()

    class Meta:
        db_table = 'categories'
        ordering = ['-created_at']
        verbose_name_plural = 'categories'

    def __str__(self):
        return self.name


class Tag(UUIDModel, TimestampedModel):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='note_tags')
    name = models.CharField(max_length=50)

    objects = UserOwnedQuerySet.as_manager()

    class Meta:
        db_table = 'tags'
        ordering = ['-created_at']

    def __str__(self):
        return self.name


class Note(UUIDModel, TimestampedModel):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notes')
    title = models.CharField(max_length=255, blank=True, default='')
    content = models.TextField(blank=True, default='')

    # Deleting a category keeps its notes, uncategorized
    category = models.ForeignKey(
        Category,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='notes',
    )
    tags = models.ManyToManyField(Tag, blank=True, related_name='notes')

    objects = UserOwnedQuerySet.as_manager()

    class Meta:
        db_table = 'notes'
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['user', '-updated_at'], name='notes_user_updated_idx'),
        ]

    def __str__(self):
        return self.title or f"Note {self.id}"
