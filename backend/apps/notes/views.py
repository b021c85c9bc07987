"""
Views for notes, categories and tags
"""
import logging

from django.db.models import Q
from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated

from apps.common.utils import is_valid_uuid
from apps.notes.models import Category, Note, Tag
from apps.notes.serializers import CategorySerializer, NoteSerializer, TagSerializer

logger = logging.getLogger(__name__)


class UserOwnedViewSet(viewsets.ModelViewSet):
    """
    CRUD over rows owned by the current user.

    Rows of other users are invisible (404), never forbidden.
    """
    permission_classes = [IsAuthenticated]
    model = None

    def get_queryset(self):
        return self.model.objects.for_user(self.request.user)

    def perform_create(self, serializer):
        instance = serializer.save(user=self.request.user)
        logger.info(
            f"{self.model._meta.model_name}_created",
            extra={"user_id": self.request.user.id, "id": str(instance.id)},
        )


class CategoryViewSet(UserOwnedViewSet):
    """
    Categories. Deleting one leaves its notes uncategorized.
    """
    model = Category
    serializer_class = CategorySerializer


class TagViewSet(UserOwnedViewSet):
    """
    Tags. Deleting one removes it from every note.
    """
    model = Tag
    serializer_class = TagSerializer


class NoteViewSet(UserOwnedViewSet):
    """
    Notes, most recently updated first.

    Query params:
        category: category id, or "none" for uncategorized notes
        tag: tag id
        search: case-insensitive match on title or content
    """
    model = Note
    serializer_class = NoteSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params

        category = params.get('category')
        if category == 'none':
            queryset = queryset.filter(category__isnull=True)
        elif category:
            if not is_valid_uuid(category):
                return queryset.none()
            queryset = queryset.filter(category_id=category)

        tag = params.get('tag')
        if tag:
            if not is_valid_uuid(tag):
                return queryset.none()
            queryset = queryset.filter(tags__id=tag)

        search = params.get('search', '').strip()
        if search:
            queryset = queryset.filter(
                Q(title__icontains=search) | Q(content__icontains=search)
            )

        return queryset.select_related('category').prefetch_related('tags')
