"""
URL configuration for notes app
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from apps.notes.views import CategoryViewSet, NoteViewSet, TagViewSet

router = DefaultRouter()
router.register(r'notes', NoteViewSet, basename='note')
router.register(r'categories', CategoryViewSet, basename='category')
router.register(r'tags', TagViewSet, basename='tag')

urlpatterns = [
    path('', include(router.urls)),
]
