"""
Tests for the blog app.

Covers:
- Title normalization and the suffix search (blog.slugs)
- Post slug lifecycle: creation, collisions, title edits, unchanged re-saves
- The check-then-insert race and the API's retry on it
- JSON API views: listing, slug lookup, create/update/delete, ownership
- Sitemap and admin wiring
"""

import datetime
import json
import re
from unittest import mock

from django.contrib import admin
from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction
from django.test import Client, RequestFactory, SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from .admin import PostAdmin
from .models import Post
from .slugs import FALLBACK_SLUG, normalize_title, unique_slug

User = get_user_model()

SLUG_PATTERN = re.compile(r'[a-z0-9]+(-[a-z0-9]+)*')

# WhiteNoise's manifest storage needs `collectstatic`; admin pages in tests
# use plain static storage instead.
_TEST_STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}


def _make_user(username='writer', password='testpass123'):
    """Create and return a test user."""
    return User.objects.create_user(username=username, password=password)


def _make_post(author, title='Hello World', content='Body text.', published=False, published_at=None):
    """Create and return a saved post."""
    post = Post(title=title, content=content, author=author)
    if published:
        post.publish()
        if published_at is not None:
            post.published_at = published_at
    post.save()
    return post


# ---------------------------------------------------------------------------
# Slug generation
# ---------------------------------------------------------------------------

class NormalizeTitleTest(SimpleTestCase):
    """Tests for normalize_title()."""

    def test_basic_title(self):
        self.assertEqual(normalize_title('Hello World!'), 'hello-world')

    def test_whitespace_and_underscores_only_falls_back(self):
        self.assertEqual(normalize_title('   ___   '), 'untitled')

    def test_punctuation_only_falls_back(self):
        self.assertEqual(normalize_title('?!.,;'), FALLBACK_SLUG)

    def test_empty_title_falls_back(self):
        self.assertEqual(normalize_title(''), FALLBACK_SLUG)

    def test_separator_runs_collapse(self):
        """Runs of spaces, underscores and hyphens become a single hyphen."""
        self.assertEqual(
            normalize_title('  Django  --  Tips__and _-_ Tricks  '),
            'django-tips-and-tricks',
        )

    def test_leading_and_trailing_hyphens_stripped(self):
        self.assertEqual(normalize_title('--- Draft ---'), 'draft')

    def test_punctuation_removed_without_separator(self):
        """Removed characters do not leave a hyphen behind."""
        self.assertEqual(normalize_title("It's 2024: a recap"), 'its-2024-a-recap')

    def test_non_ascii_letters_dropped(self):
        self.assertEqual(normalize_title('Café Crème'), 'caf-crme')

    def test_tabs_and_newlines_are_separators(self):
        self.assertEqual(normalize_title('one\ttwo\nthree'), 'one-two-three')

    def test_output_is_always_url_safe(self):
        """Every result is lower-case word characters joined by single hyphens."""
        titles = [
            'Hello World!',
            '   ___   ',
            '---',
            'UPPER lower MiXeD',
            'a_b-c d',
            '  --leading and trailing--  ',
            '100% pure & simple',
            'Ünïcödé only',
            '日本語のタイトル',
            'emoji 🎉 party',
            'tabs\t\tand\nnewlines',
            'x' * 200,
        ]
        for title in titles:
            with self.subTest(title=title):
                slug = normalize_title(title)
                self.assertIsNotNone(SLUG_PATTERN.fullmatch(slug), slug)
                self.assertNotIn('--', slug)


class UniqueSlugTest(SimpleTestCase):
    """Tests for unique_slug() with an in-memory existence check."""

    def test_free_base_used_as_is(self):
        self.assertEqual(unique_slug('Hello World', lambda candidate: False), 'hello-world')

    def test_suffix_counts_up_from_one(self):
        taken = {'hello-world', 'hello-world-1'}
        self.assertEqual(unique_slug('Hello World', taken.__contains__), 'hello-world-2')

    def test_candidates_checked_in_order(self):
        """The base is tried first, then base-1, base-2, ..."""
        checked = []
        taken = {'news', 'news-1', 'news-2'}

        def is_taken(candidate):
            checked.append(candidate)
            return candidate in taken

        self.assertEqual(unique_slug('News', is_taken), 'news-3')
        self.assertEqual(checked, ['news', 'news-1', 'news-2', 'news-3'])

    def test_fallback_gets_suffix_too(self):
        self.assertEqual(unique_slug('!!!', {'untitled'}.__contains__), 'untitled-1')

    def test_gap_in_suffixes_is_filled(self):
        taken = {'hello', 'hello-2'}
        self.assertEqual(unique_slug('Hello', taken.__contains__), 'hello-1')


# ---------------------------------------------------------------------------
# Model tests
# ---------------------------------------------------------------------------

class PostSlugModelTest(TestCase):
    """Slug lifecycle on the Post model."""

    def setUp(self):
        """Create an author for the posts."""
        self.author = _make_user()

    def test_sequential_duplicates_are_numbered(self):
        """Three posts with the same title get base, base-1, base-2."""
        slugs = [_make_post(self.author).slug for _ in range(3)]
        self.assertEqual(slugs, ['hello-world', 'hello-world-1', 'hello-world-2'])

    def test_untitled_fallback(self):
        post = _make_post(self.author, title='   ___   ')
        self.assertEqual(post.slug, 'untitled')

    def test_supplied_slug_is_ignored_on_create(self):
        post = Post(title='Real Title', slug='something-else', content='x', author=self.author)
        post.save()
        self.assertEqual(post.slug, 'real-title')

    def test_unchanged_title_keeps_slug(self):
        """Saving other field changes does not touch the slug."""
        post = _make_post(self.author)
        post = Post.objects.get(pk=post.pk)
        post.content = 'Edited body.'
        post.save()
        post.refresh_from_db()
        self.assertEqual(post.slug, 'hello-world')

    def test_resubmitted_title_keeps_own_slug(self):
        """A post is never bumped by its own slug, even if a lower slug freed up."""
        first = _make_post(self.author)
        second = _make_post(self.author)
        self.assertEqual(second.slug, 'hello-world-1')
        first.delete()

        second = Post.objects.get(pk=second.pk)
        second.title = 'Hello World'
        second.save()
        self.assertEqual(second.slug, 'hello-world-1')

    def test_title_change_recomputes_slug(self):
        post = _make_post(self.author)
        post.title = 'A Brand New Title'
        post.save()
        post.refresh_from_db()
        self.assertEqual(post.slug, 'a-brand-new-title')

    def test_title_change_never_takes_another_posts_slug(self):
        """Renaming onto an existing title renumbers instead of reusing."""
        _make_post(self.author, title='Hello World')
        _make_post(self.author, title='Hello World')
        other = _make_post(self.author, title='Something Else')

        other.title = 'Hello World'
        other.save()
        self.assertEqual(other.slug, 'hello-world-2')
        self.assertEqual(Post.objects.filter(slug='hello-world-2').count(), 1)

    def test_title_change_with_same_base_keeps_slug(self):
        """Its own slug does not count as a collision."""
        post = _make_post(self.author, title='Hello World')
        post.title = 'Hello, World'
        post.save()
        self.assertEqual(post.slug, 'hello-world')

    def test_reverted_title_keeps_slug(self):
        """Editing the title and changing it back before saving is no change."""
        _make_post(self.author)
        post = _make_post(self.author)
        post.title = 'Temporary'
        post.title = 'Hello World'
        post.save()
        self.assertEqual(post.slug, 'hello-world-1')

    def test_update_fields_with_title_writes_slug(self):
        post = _make_post(self.author)
        post.title = 'Renamed'
        post.save(update_fields=['title'])
        post.refresh_from_db()
        self.assertEqual(post.slug, 'renamed')

    def test_deferred_title_is_not_a_change(self):
        post = _make_post(self.author)
        deferred = Post.objects.only('id', 'content', 'author').get(pk=post.pk)
        deferred.content = 'Only the body changed.'
        deferred.save()
        post.refresh_from_db()
        self.assertEqual(post.slug, 'hello-world')

    def test_concurrent_writers_hit_unique_constraint(self):
        """
        Two writers that both saw the slug as free collide at the database.

        The existence check is patched to miss the first writer's row, which
        is what happens when both checks run before either INSERT.
        """
        _make_post(self.author)
        racer = Post(title='Hello World', content='x', author=self.author)
        with mock.patch.object(Post, 'slug_taken', return_value=False):
            with self.assertRaises(IntegrityError):
                with transaction.atomic():
                    racer.save()

    def test_get_absolute_url(self):
        post = _make_post(self.author)
        self.assertEqual(post.get_absolute_url(), '/api/blogs/hello-world/')

    def test_str(self):
        self.assertEqual(str(Post(title='My Post')), 'My Post')


class PostPublicationTest(TestCase):
    """Publish/unpublish helpers and the published() queryset."""

    def setUp(self):
        self.author = _make_user()

    def test_publish_stamps_time(self):
        post = _make_post(self.author)
        self.assertIsNone(post.published_at)
        post.publish()
        self.assertTrue(post.is_published)
        self.assertIsNotNone(post.published_at)

    def test_unpublish_keeps_time(self):
        post = _make_post(self.author, published=True)
        stamp = post.published_at
        post.unpublish()
        self.assertFalse(post.is_published)
        self.assertEqual(post.published_at, stamp)

    def test_published_queryset(self):
        now = timezone.now()
        older = _make_post(self.author, title='Older', published=True,
                           published_at=now - datetime.timedelta(days=2))
        newer = _make_post(self.author, title='Newer', published=True,
                           published_at=now - datetime.timedelta(days=1))
        _make_post(self.author, title='Draft')
        self.assertEqual(list(Post.objects.published()), [newer, older])


# ---------------------------------------------------------------------------
# API view tests
# ---------------------------------------------------------------------------

class ApiTestCase(TestCase):
    """Shared fixtures for API tests."""

    def setUp(self):
        self.client = Client()
        self.author = _make_user('author')
        self.other = _make_user('other')
        self.list_url = reverse('blog:post_list')

    def post_json(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def put_json(self, url, data):
        return self.client.put(url, data=json.dumps(data), content_type='application/json')


class PostListApiTest(ApiTestCase):
    """GET /api/blogs/ and GET /api/blogs/user/."""

    def test_lists_only_published_newest_first(self):
        now = timezone.now()
        _make_post(self.author, title='Old', published=True,
                   published_at=now - datetime.timedelta(days=3))
        _make_post(self.author, title='New', published=True,
                   published_at=now - datetime.timedelta(hours=1))
        _make_post(self.author, title='Draft')

        response = self.client.get(self.list_url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual([p['slug'] for p in response.json()], ['new', 'old'])

    def test_post_representation(self):
        _make_post(self.author, published=True)
        data = self.client.get(self.list_url).json()[0]
        self.assertEqual(data['title'], 'Hello World')
        self.assertEqual(data['slug'], 'hello-world')
        self.assertEqual(data['author'], {'id': self.author.pk, 'username': 'author'})
        self.assertTrue(data['isPublished'])
        self.assertIsNotNone(data['publishedAt'])
        self.assertEqual(data['url'], '/api/blogs/hello-world/')

    def test_user_posts_requires_login(self):
        response = self.client.get(reverse('blog:user_posts'))
        self.assertEqual(response.status_code, 401)

    def test_user_posts_lists_own_drafts_and_published(self):
        _make_post(self.author, title='Mine Draft')
        _make_post(self.author, title='Mine Live', published=True)
        _make_post(self.other, title='Theirs', published=True)

        self.client.force_login(self.author)
        response = self.client.get(reverse('blog:user_posts'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            sorted(p['slug'] for p in response.json()),
            ['mine-draft', 'mine-live'],
        )


class PostDetailApiTest(ApiTestCase):
    """GET /api/blogs/<slug>/ and GET /api/blogs/id/<id>/."""

    def test_get_published_by_slug(self):
        _make_post(self.author, published=True)
        response = self.client.get('/api/blogs/hello-world/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['title'], 'Hello World')

    def test_unknown_slug_404(self):
        response = self.client.get('/api/blogs/no-such-post/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['message'], 'Post not found')

    def test_draft_hidden_from_public(self):
        _make_post(self.author)
        self.assertEqual(self.client.get('/api/blogs/hello-world/').status_code, 404)
        self.client.force_login(self.other)
        self.assertEqual(self.client.get('/api/blogs/hello-world/').status_code, 404)

    def test_draft_visible_to_author(self):
        _make_post(self.author)
        self.client.force_login(self.author)
        self.assertEqual(self.client.get('/api/blogs/hello-world/').status_code, 200)

    def test_edit_fetch_requires_login(self):
        post = _make_post(self.author)
        response = self.client.get(reverse('blog:post_edit', kwargs={'pk': post.pk}))
        self.assertEqual(response.status_code, 401)

    def test_edit_fetch_owner(self):
        post = _make_post(self.author)
        self.client.force_login(self.author)
        response = self.client.get(reverse('blog:post_edit', kwargs={'pk': post.pk}))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['id'], post.pk)

    def test_edit_fetch_not_owner(self):
        post = _make_post(self.author)
        self.client.force_login(self.other)
        response = self.client.get(reverse('blog:post_edit', kwargs={'pk': post.pk}))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'Not authorized to edit this post')

    def test_edit_fetch_missing(self):
        self.client.force_login(self.author)
        response = self.client.get(reverse('blog:post_edit', kwargs={'pk': 9999}))
        self.assertEqual(response.status_code, 404)


class PostCreateApiTest(ApiTestCase):
    """POST /api/blogs/."""

    def test_requires_login(self):
        response = self.post_json(self.list_url, {'title': 'Hello World', 'content': 'x'})
        self.assertEqual(response.status_code, 401)
        self.assertFalse(Post.objects.exists())

    def test_create_draft(self):
        self.client.force_login(self.author)
        response = self.post_json(self.list_url, {'title': '  Hello World!  ', 'content': ' Body '})
        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['title'], 'Hello World!')
        self.assertEqual(data['content'], 'Body')
        self.assertEqual(data['slug'], 'hello-world')
        self.assertFalse(data['isPublished'])
        self.assertIsNone(data['publishedAt'])
        self.assertEqual(Post.objects.get().author, self.author)

    def test_create_published_stamps_time(self):
        self.client.force_login(self.author)
        response = self.post_json(self.list_url, {
            'title': 'Live', 'content': 'x', 'isPublished': True,
        })
        self.assertEqual(response.status_code, 201)
        self.assertTrue(response.json()['isPublished'])
        self.assertIsNotNone(response.json()['publishedAt'])

    def test_duplicate_titles_numbered(self):
        self.client.force_login(self.author)
        slugs = [
            self.post_json(self.list_url, {'title': 'Hello World', 'content': 'x'}).json()['slug']
            for _ in range(3)
        ]
        self.assertEqual(slugs, ['hello-world', 'hello-world-1', 'hello-world-2'])

    def test_missing_fields(self):
        self.client.force_login(self.author)
        for payload in ({'title': 'Only title'}, {'content': 'Only content'}, {'title': '   ', 'content': 'x'}):
            with self.subTest(payload=payload):
                response = self.post_json(self.list_url, payload)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()['message'], 'Title and content are required')

    def test_invalid_json(self):
        self.client.force_login(self.author)
        response = self.client.post(self.list_url, data='{not json', content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'Invalid JSON.')

    def test_non_object_json(self):
        self.client.force_login(self.author)
        response = self.post_json(self.list_url, ['title', 'content'])
        self.assertEqual(response.status_code, 400)

    def test_title_too_long(self):
        self.client.force_login(self.author)
        response = self.post_json(self.list_url, {'title': 'x' * 201, 'content': 'x'})
        self.assertEqual(response.status_code, 400)
        self.assertTrue(response.json()['message'].startswith('Validation failed: '))
        self.assertFalse(Post.objects.exists())

    def test_slug_race_is_retried(self):
        """A unique-constraint hit on the slug reruns the write with a fresh slug."""
        _make_post(self.author)
        self.client.force_login(self.author)
        # 1: stale check misses the existing row -> INSERT fails
        # 2: post-failure check confirms the slug is held elsewhere
        # 3, 4: second attempt sees the row and moves to the next suffix
        with mock.patch.object(Post, 'slug_taken', side_effect=[False, True, True, False]):
            with self.assertLogs('blog.views', level='WARNING'):
                response = self.post_json(self.list_url, {'title': 'Hello World', 'content': 'x'})
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['slug'], 'hello-world-1')
        self.assertEqual(Post.objects.count(), 2)

    @override_settings(BLOG_SLUG_WRITE_ATTEMPTS=1)
    def test_slug_race_exhausted_returns_conflict(self):
        _make_post(self.author)
        self.client.force_login(self.author)
        with mock.patch.object(Post, 'slug_taken', side_effect=[False, True]):
            with self.assertLogs('blog.views', level='WARNING'):
                response = self.post_json(self.list_url, {'title': 'Hello World', 'content': 'x'})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['message'], 'Slug must be unique')
        self.assertEqual(Post.objects.count(), 1)


class PostUpdateApiTest(ApiTestCase):
    """PUT /api/blogs/<id>/."""

    def setUp(self):
        super().setUp()
        self.post = _make_post(self.author)
        self.url = f'/api/blogs/{self.post.pk}/'

    def test_requires_login(self):
        self.assertEqual(self.put_json(self.url, {'title': 'New'}).status_code, 401)

    def test_not_owner(self):
        self.client.force_login(self.other)
        response = self.put_json(self.url, {'title': 'Hijacked'})
        self.assertEqual(response.status_code, 403)
        self.post.refresh_from_db()
        self.assertEqual(self.post.title, 'Hello World')

    def test_missing_post(self):
        self.client.force_login(self.author)
        self.assertEqual(self.put_json('/api/blogs/9999/', {'title': 'x'}).status_code, 404)

    def test_non_numeric_id(self):
        self.client.force_login(self.author)
        self.assertEqual(self.put_json('/api/blogs/hello-world/', {'title': 'x'}).status_code, 404)

    def test_title_change_recomputes_slug(self):
        _make_post(self.other, title='Taken Title')
        self.client.force_login(self.author)
        response = self.put_json(self.url, {'title': 'Taken Title'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['slug'], 'taken-title-1')

    def test_content_only_keeps_slug(self):
        self.client.force_login(self.author)
        response = self.put_json(self.url, {'content': 'New body'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['slug'], 'hello-world')
        self.assertEqual(response.json()['content'], 'New body')

    def test_same_title_keeps_slug(self):
        self.client.force_login(self.author)
        response = self.put_json(self.url, {'title': 'Hello World', 'content': 'Edited'})
        self.assertEqual(response.json()['slug'], 'hello-world')

    def test_blank_fields_keep_values(self):
        self.client.force_login(self.author)
        response = self.put_json(self.url, {'title': '  ', 'content': ''})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['title'], 'Hello World')
        self.assertEqual(response.json()['content'], 'Body text.')

    def test_publish_and_unpublish(self):
        self.client.force_login(self.author)
        published = self.put_json(self.url, {'isPublished': True}).json()
        self.assertTrue(published['isPublished'])
        self.assertIsNotNone(published['publishedAt'])

        unpublished = self.put_json(self.url, {'isPublished': False}).json()
        self.assertFalse(unpublished['isPublished'])
        self.assertEqual(unpublished['publishedAt'], published['publishedAt'])

    def test_rename_slug_race_is_retried(self):
        """A rename that loses the slug to a concurrent write takes the next suffix."""
        _make_post(self.other, title='Taken Title')
        self.client.force_login(self.author)
        # 1: stale check misses the other row -> UPDATE fails
        # 2: post-failure check confirms the slug is held elsewhere
        # 3, 4: second attempt sees the row and moves to the next suffix
        with mock.patch.object(Post, 'slug_taken', side_effect=[False, True, True, False]):
            with self.assertLogs('blog.views', level='WARNING'):
                response = self.put_json(self.url, {'title': 'Taken Title'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['slug'], 'taken-title-1')
        self.post.refresh_from_db()
        self.assertEqual(self.post.slug, 'taken-title-1')


class PostDeleteApiTest(ApiTestCase):
    """DELETE /api/blogs/<id>/."""

    def setUp(self):
        super().setUp()
        self.post = _make_post(self.author)
        self.url = f'/api/blogs/{self.post.pk}/'

    def test_requires_login(self):
        self.assertEqual(self.client.delete(self.url).status_code, 401)
        self.assertTrue(Post.objects.filter(pk=self.post.pk).exists())

    def test_not_owner(self):
        self.client.force_login(self.other)
        response = self.client.delete(self.url)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'Not authorized to delete this post')

    def test_owner_deletes(self):
        self.client.force_login(self.author)
        response = self.client.delete(self.url)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['message'], 'Post removed successfully')
        self.assertFalse(Post.objects.exists())

    def test_freed_slug_is_reused(self):
        self.client.force_login(self.author)
        self.client.delete(self.url)
        response = self.post_json(self.list_url, {'title': 'Hello World', 'content': 'x'})
        self.assertEqual(response.json()['slug'], 'hello-world')


class DatabaseErrorApiTest(ApiTestCase):
    """Database failures are logged and answered with a JSON 500."""

    def setUp(self):
        super().setUp()
        self.post = _make_post(self.author, published=True)
        self.item_url = f'/api/blogs/{self.post.pk}/'

    def assertServerError(self, response, message):
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response['Content-Type'], 'application/json')
        self.assertEqual(response.json()['message'], message)

    def test_list_published(self):
        with mock.patch.object(Post.objects, 'published', side_effect=DatabaseError('down')):
            with self.assertLogs('blog.views', level='ERROR'):
                response = self.client.get(self.list_url)
        self.assertServerError(response, 'Server error fetching posts')

    def test_list_user_posts(self):
        self.client.force_login(self.author)
        with mock.patch.object(Post.objects, 'by_author', side_effect=DatabaseError('down')):
            with self.assertLogs('blog.views', level='ERROR'):
                response = self.client.get(reverse('blog:user_posts'))
        self.assertServerError(response, 'Server error fetching user posts')

    def test_fetch_by_slug(self):
        with mock.patch.object(Post.objects, 'select_related', side_effect=DatabaseError('down')):
            with self.assertLogs('blog.views', level='ERROR'):
                response = self.client.get('/api/blogs/hello-world/')
        self.assertServerError(response, 'Server error fetching post')

    def test_fetch_by_id(self):
        self.client.force_login(self.author)
        with mock.patch.object(Post.objects, 'select_related', side_effect=DatabaseError('down')):
            with self.assertLogs('blog.views', level='ERROR'):
                response = self.client.get(reverse('blog:post_edit', kwargs={'pk': self.post.pk}))
        self.assertServerError(response, 'Server error fetching post')

    def test_create(self):
        self.client.force_login(self.author)
        with mock.patch('blog.views.persist_post', side_effect=DatabaseError('down')):
            with self.assertLogs('blog.views', level='ERROR'):
                response = self.post_json(self.list_url, {'title': 'New', 'content': 'x'})
        self.assertServerError(response, 'Server error creating post')

    def test_update(self):
        self.client.force_login(self.author)
        with mock.patch('blog.views.persist_post', side_effect=DatabaseError('down')):
            with self.assertLogs('blog.views', level='ERROR'):
                response = self.put_json(self.item_url, {'title': 'New'})
        self.assertServerError(response, 'Server error updating post')

    def test_update_lookup(self):
        self.client.force_login(self.author)
        with mock.patch.object(Post.objects, 'select_related', side_effect=DatabaseError('down')):
            with self.assertLogs('blog.views', level='ERROR'):
                response = self.put_json(self.item_url, {'title': 'New'})
        self.assertServerError(response, 'Server error fetching post')

    def test_delete(self):
        self.client.force_login(self.author)
        with mock.patch.object(Post, 'delete', side_effect=DatabaseError('down')):
            with self.assertLogs('blog.views', level='ERROR'):
                response = self.client.delete(self.item_url)
        self.assertServerError(response, 'Server error deleting post')
        self.assertTrue(Post.objects.filter(pk=self.post.pk).exists())


# ---------------------------------------------------------------------------
# Project wiring
# ---------------------------------------------------------------------------

class ProjectUrlsTest(TestCase):
    """Root route, sitemap, and admin."""

    def setUp(self):
        self.author = _make_user()

    def test_root(self):
        response = self.client.get('/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b'Blog API is running')

    def test_sitemap_lists_published_posts_only(self):
        _make_post(self.author, title='Live Post', published=True)
        _make_post(self.author, title='Draft Post')
        response = self.client.get('/sitemap.xml')
        self.assertEqual(response.status_code, 200)
        self.assertContains(response, '/api/blogs/live-post/')
        self.assertNotContains(response, '/api/blogs/draft-post/')

    @override_settings(STORAGES=_TEST_STORAGES)
    def test_admin_changelist_and_publish_action(self):
        post = _make_post(self.author)
        admin_user = User.objects.create_superuser('admin', 'admin@example.com', 'adminpass123')
        self.client.force_login(admin_user)

        url = reverse('admin:blog_post_changelist')
        self.assertEqual(self.client.get(url).status_code, 200)

        response = self.client.post(url, {
            'action': 'make_published',
            '_selected_action': [post.pk],
        })
        self.assertEqual(response.status_code, 302)
        post.refresh_from_db()
        self.assertTrue(post.is_published)
        self.assertIsNotNone(post.published_at)

    def test_admin_form_publish_stamps_date(self):
        """Ticking is_published in the change form sets published_at if it is empty."""
        post = _make_post(self.author)
        post.is_published = True
        request = RequestFactory().post('/admin/blog/post/')
        request.user = User.objects.create_superuser('admin', 'admin@example.com', 'adminpass123')

        PostAdmin(Post, admin.site).save_model(request, post, form=None, change=True)
        post.refresh_from_db()
        self.assertTrue(post.is_published)
        self.assertIsNotNone(post.published_at)

    def test_admin_form_keeps_existing_publish_date(self):
        stamp = timezone.now() - datetime.timedelta(days=7)
        post = _make_post(self.author, published=True, published_at=stamp)
        request = RequestFactory().post('/admin/blog/post/')
        request.user = User.objects.create_superuser('admin', 'admin@example.com', 'adminpass123')

        PostAdmin(Post, admin.site).save_model(request, post, form=None, change=True)
        post.refresh_from_db()
        self.assertEqual(post.published_at, stamp)
