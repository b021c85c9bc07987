"""
Serializers for notes, categories and tags
"""
from rest_framework import serializers

from apps.notes.models import Category, Note, Tag


class OwnedPrimaryKeyRelatedField(serializers.PrimaryKeyRelatedField):
    """Primary key field that only resolves rows owned by the requesting user"""

    def get_queryset(self):
        queryset = super().get_queryset()
        request = self.context.get('request')
        if request is None:
            return queryset.none()
        return queryset.filter(user=request.user)


class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'name', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']


class TagSerializer(serializers.ModelSerializer):
    class Meta:
        model = Tag
        fields = ['id', 'name', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']


class NoteSerializer(serializers.ModelSerializer):
    """
    Note with its category and tags expanded for reading.

    Writes take ``category`` (id or null) and ``tag_ids`` (list of ids).
    """
    category = OwnedPrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        allow_null=True,
        required=False,
    )
    category_detail = CategorySerializer(source='category', read_only=True)
    tags = TagSerializer(many=True, read_only=True)
    tag_ids = OwnedPrimaryKeyRelatedField(
        source='tags',
        queryset=Tag.objects.all(),
        many=True,
        required=False,
        write_only=True,
    )

    class Meta:
        model = Note
        fields = [
            'id',
            'title',
            'content',
            'category',
            'category_detail',
            'tags',
            'tag_ids',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
