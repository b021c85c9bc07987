"""
Tests for notes, categories and tags endpoints

Covers:
- CRUD and per-user scoping for all three resources
- category/tag assignment, ownership validation
- SET_NULL on category delete, link removal on tag delete
- ?category=, ?tag=, ?search= filters
"""
import uuid

from django.contrib.auth.models import User
from rest_framework import status
from rest_framework.test import APITestCase

from apps.notes.models import Category, Note, Tag


class NotesTestMixin:
    """Shared helpers for creating test fixtures."""

    def _create_user(self, username=None):
        return User.objects.create_user(
            username=username or f'testuser-{uuid.uuid4().hex[:8]}',
            password='testpass123',
        )

    def _create_note(self, user, title='Note', content='', category=None, tags=()):
        note = Note.objects.create(user=user, title=title, content=content, category=category)
        if tags:
            note.tags.set(tags)
        return note


class NoteCrudTest(NotesTestMixin, APITestCase):

    def setUp(self):
        self.user = self._create_user()
        self.client.force_authenticate(user=self.user)
        self.category = Category.objects.create(user=self.user, name='Work')
        self.tag = Tag.objects.create(user=self.user, name='urgent')

    def test_create_note_with_category_and_tags(self):
        response = self.client.post('/api/notes/', {
            'title': 'Plan',
            'content': 'Ship it',
            'category': str(self.category.id),
            'tag_ids': [str(self.tag.id)],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['category'], self.category.id)
        self.assertEqual(response.data['category_detail']['name'], 'Work')
        self.assertEqual([t['name'] for t in response.data['tags']], ['urgent'])

        note = Note.objects.get(id=response.data['id'])
        self.assertEqual(note.user, self.user)
        self.assertEqual(list(note.tags.all()), [self.tag])

    def test_list_is_ordered_by_last_update(self):
        older = self._create_note(self.user, title='older')
        self._create_note(self.user, title='newer')
        older.title = 'older, edited'
        older.save()

        response = self.client.get('/api/notes/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        titles = [n['title'] for n in response.data['results']]
        self.assertEqual(titles, ['older, edited', 'newer'])

    def test_partial_update(self):
        note = self._create_note(self.user, title='Draft', content='body', category=self.category)

        response = self.client.patch(f'/api/notes/{note.id}/', {'title': 'Final'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        note.refresh_from_db()
        self.assertEqual(note.title, 'Final')
        self.assertEqual(note.content, 'body')
        self.assertEqual(note.category, self.category)

    def test_clear_category_and_tags(self):
        note = self._create_note(self.user, category=self.category, tags=[self.tag])

        response = self.client.patch(
            f'/api/notes/{note.id}/',
            {'category': None, 'tag_ids': []},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        note.refresh_from_db()
        self.assertIsNone(note.category)
        self.assertEqual(note.tags.count(), 0)

    def test_delete_note(self):
        note = self._create_note(self.user)

        response = self.client.delete(f'/api/notes/{note.id}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Note.objects.filter(id=note.id).exists())

    def test_requires_authentication(self):
        self.client.force_authenticate(user=None)

        response = self.client.get('/api/notes/')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class NoteScopingTest(NotesTestMixin, APITestCase):

    def setUp(self):
        self.user = self._create_user()
        self.other = self._create_user()
        self.client.force_authenticate(user=self.user)

    def test_other_users_notes_are_invisible(self):
        self._create_note(self.user, title='mine')
        theirs = self._create_note(self.other, title='theirs')

        listing = self.client.get('/api/notes/')
        detail = self.client.get(f'/api/notes/{theirs.id}/')
        delete = self.client.delete(f'/api/notes/{theirs.id}/')

        self.assertEqual([n['title'] for n in listing.data['results']], ['mine'])
        self.assertEqual(detail.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(delete.status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(Note.objects.filter(id=theirs.id).exists())

    def test_cannot_use_other_users_category(self):
        foreign = Category.objects.create(user=self.other, name='Theirs')

        response = self.client.post('/api/notes/', {
            'title': 'x',
            'category': str(foreign.id),
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('category', response.data)

    def test_cannot_use_other_users_tag(self):
        foreign = Tag.objects.create(user=self.other, name='theirs')

        response = self.client.post('/api/notes/', {
            'title': 'x',
            'tag_ids': [str(foreign.id)],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('tag_ids', response.data)


class NoteFilterTest(NotesTestMixin, APITestCase):

    def setUp(self):
        self.user = self._create_user()
        self.client.force_authenticate(user=self.user)
        self.work = Category.objects.create(user=self.user, name='Work')
        self.idea = Tag.objects.create(user=self.user, name='idea')

        self._create_note(self.user, title='Quarterly report', content='numbers', category=self.work)
        self._create_note(self.user, title='Garden', content='Plant tomatoes', tags=[self.idea])
        self._create_note(self.user, title='Loose thought', content='Report later')

    def _titles(self, query):
        response = self.client.get(f'/api/notes/{query}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return sorted(n['title'] for n in response.data['results'])

    def test_filter_by_category(self):
        self.assertEqual(self._titles(f'?category={self.work.id}'), ['Quarterly report'])

    def test_filter_uncategorized(self):
        self.assertEqual(self._titles('?category=none'), ['Garden', 'Loose thought'])

    def test_filter_by_tag(self):
        self.assertEqual(self._titles(f'?tag={self.idea.id}'), ['Garden'])

    def test_search_title_and_content(self):
        self.assertEqual(self._titles('?search=report'), ['Loose thought', 'Quarterly report'])

    def test_invalid_filter_id_returns_nothing(self):
        self.assertEqual(self._titles('?category=not-a-uuid'), [])


class CategoryTagTest(NotesTestMixin, APITestCase):

    def setUp(self):
        self.user = self._create_user()
        self.client.force_authenticate(user=self.user)

    def test_create_and_list_categories(self):
        response = self.client.post('/api/categories/', {'name': 'Personal'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        listing = self.client.get('/api/categories/')
        self.assertEqual([c['name'] for c in listing.data['results']], ['Personal'])

    def test_deleting_category_keeps_notes(self):
        category = Category.objects.create(user=self.user, name='Temp')
        note = self._create_note(self.user, category=category)

        response = self.client.delete(f'/api/categories/{category.id}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        note.refresh_from_db()
        self.assertIsNone(note.category)

    def test_deleting_tag_removes_links_only(self):
        tag = Tag.objects.create(user=self.user, name='old')
        keep = Tag.objects.create(user=self.user, name='keep')
        note = self._create_note(self.user, tags=[tag, keep])

        response = self.client.delete(f'/api/tags/{tag.id}/')

        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertTrue(Note.objects.filter(id=note.id).exists())
        self.assertEqual([t.name for t in note.tags.all()], ['keep'])

    def test_rename_tag(self):
        tag = Tag.objects.create(user=self.user, name='tpyo')

        response = self.client.patch(f'/api/tags/{tag.id}/', {'name': 'typo'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        tag.refresh_from_db()
        self.assertEqual(tag.name, 'typo')

    def test_other_users_categories_are_invisible(self):
        other = self._create_user()
        foreign = Category.objects.create(user=other, name='Theirs')

        response = self.client.get(f'/api/categories/{foreign.id}/')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
