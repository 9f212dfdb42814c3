"""
JSON API views for blog posts.

Provides:
- PostCollectionView: list published posts (GET), create a post (POST)
- UserPostListView: the logged-in user's own posts
- PostEditView: fetch a post by id for editing (owner only)
- PostResourceView: public fetch by slug (GET), update (PUT) and delete
  (DELETE) by id

Every response is JSON. Authentication is the regular Django session; the
views answer 401 instead of redirecting to a login page.
"""

import json
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import DatabaseError, IntegrityError, transaction
from django.http import HttpResponse, JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from .models import Post

logger = logging.getLogger(__name__)


class SlugConflict(Exception):
    """Raised when concurrent writers kept claiming the same slug."""


def serialize_post(post):
    """Return the public JSON representation of a post."""
    return {
        'id': post.pk,
        'title': post.title,
        'slug': post.slug,
        'content': post.content,
        'author': {
            'id': post.author_id,
            'username': post.author.get_username(),
        },
        'isPublished': post.is_published,
        'publishedAt': post.published_at.isoformat() if post.published_at else None,
        'createdAt': post.created_at.isoformat() if post.created_at else None,
        'updatedAt': post.updated_at.isoformat() if post.updated_at else None,
        'url': post.get_absolute_url(),
    }


def persist_post(post):
    """
    Save ``post``, retrying the whole write if another writer took its slug.

    Slug assignment and the INSERT/UPDATE are separate statements, so two
    requests with the same title can both pick the same candidate. The
    loser gets an IntegrityError from the unique constraint; in that case the
    slug is assigned again from scratch and the save repeated, up to
    ``BLOG_SLUG_WRITE_ATTEMPTS`` times.
    """
    attempts = max(1, getattr(settings, 'BLOG_SLUG_WRITE_ATTEMPTS', 3))
    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                post.save()
            return post
        except IntegrityError:
            if not post.slug_taken(post.slug):
                raise
            logger.warning(
                "Slug %r claimed by a concurrent write (attempt %d/%d)",
                post.slug, attempt, attempts,
            )
    raise SlugConflict(post.slug)


def _json_body(request):
    """Decode the request body as a JSON object; raise ValueError otherwise."""
    body = json.loads(request.body or b'{}')
    if not isinstance(body, dict):
        raise ValueError('JSON body must be an object.')
    return body


def _clean_text(value):
    """Strip a submitted string field; non-strings count as missing."""
    return value.strip() if isinstance(value, str) else ''


def _validation_message(error):
    messages = []
    for field_messages in error.message_dict.values():
        messages.extend(field_messages)
    return f"Validation failed: {', '.join(messages)}"


class ApiLoginRequiredMixin:
    """Answer 401 JSON for anonymous users instead of redirecting."""

    def dispatch(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'message': 'Not authorized, no session'}, status=401)
        return super().dispatch(request, *args, **kwargs)


class OwnedPostMixin:
    """Look up a post by primary key and check the current user owns it."""

    def get_owned_post(self, request, pk, action):
        """Return ``(post, None)`` or ``(None, error_response)``."""
        try:
            post = Post.objects.select_related('author').get(pk=int(pk))
        except (Post.DoesNotExist, ValueError, TypeError):
            return None, JsonResponse({'message': 'Post not found'}, status=404)
        except DatabaseError:
            logger.exception("Fetch of post %s failed", pk)
            return None, JsonResponse({'message': 'Server error fetching post'}, status=500)
        if post.author_id != request.user.pk:
            return None, JsonResponse(
                {'message': f'Not authorized to {action} this post'}, status=403,
            )
        return post, None


@method_decorator(csrf_exempt, name='dispatch')
class PostCollectionView(View):
    """
    GET: published posts, newest publication first.

    POST (login required): create a post.

    Request body (JSON):
        {"title": "Hello World", "content": "...", "isPublished": true}

    Response (JSON, 201): the created post.
    """

    def get(self, request, *args, **kwargs):
        try:
            posts = list(Post.objects.published().select_related('author'))
        except DatabaseError:
            logger.exception("Fetch published posts failed")
            return JsonResponse({'message': 'Server error fetching posts'}, status=500)
        return JsonResponse([serialize_post(post) for post in posts], safe=False)

    def post(self, request, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'message': 'Not authorized, no session'}, status=401)

        try:
            body = _json_body(request)
        except ValueError:
            return JsonResponse({'message': 'Invalid JSON.'}, status=400)

        title = _clean_text(body.get('title'))
        content = _clean_text(body.get('content'))
        if not title or not content:
            return JsonResponse({'message': 'Title and content are required'}, status=400)

        post = Post(title=title, content=content, author=request.user)
        if body.get('isPublished'):
            post.publish()

        try:
            post.full_clean(exclude=['slug'])
            persist_post(post)
        except ValidationError as exc:
            return JsonResponse({'message': _validation_message(exc)}, status=400)
        except SlugConflict:
            return JsonResponse({'message': 'Slug must be unique'}, status=409)
        except DatabaseError:
            logger.exception("Create post failed for user %s", request.user.pk)
            return JsonResponse({'message': 'Server error creating post'}, status=500)

        logger.info("Post %s created with slug %r", post.pk, post.slug)
        return JsonResponse(serialize_post(post), status=201)


class UserPostListView(ApiLoginRequiredMixin, View):
    """All posts of the logged-in user, drafts included, newest first."""

    def get(self, request, *args, **kwargs):
        try:
            posts = list(Post.objects.by_author(request.user).select_related('author'))
        except DatabaseError:
            logger.exception("Fetch posts of user %s failed", request.user.pk)
            return JsonResponse({'message': 'Server error fetching user posts'}, status=500)
        return JsonResponse([serialize_post(post) for post in posts], safe=False)


class PostEditView(ApiLoginRequiredMixin, OwnedPostMixin, View):
    """Fetch a post by id so its owner can edit it."""

    def get(self, request, pk, *args, **kwargs):
        post, error = self.get_owned_post(request, pk, 'edit')
        if error:
            return error
        return JsonResponse(serialize_post(post))


@method_decorator(csrf_exempt, name='dispatch')
class PostResourceView(OwnedPostMixin, View):
    """
    Single-post endpoint.

    GET resolves ``key`` as a slug. Drafts are only shown to their author.
    PUT and DELETE resolve ``key`` as a primary key and require ownership.
    """

    def get(self, request, key, *args, **kwargs):
        try:
            post = Post.objects.select_related('author').get(slug=key)
        except Post.DoesNotExist:
            return JsonResponse({'message': 'Post not found'}, status=404)
        except DatabaseError:
            logger.exception("Fetch of post %r failed", key)
            return JsonResponse({'message': 'Server error fetching post'}, status=500)
        if not post.is_published and post.author_id != request.user.pk:
            return JsonResponse({'message': 'Post not found'}, status=404)
        return JsonResponse(serialize_post(post))

    def put(self, request, key, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'message': 'Not authorized, no session'}, status=401)
        post, error = self.get_owned_post(request, key, 'edit')
        if error:
            return error

        try:
            body = _json_body(request)
        except ValueError:
            return JsonResponse({'message': 'Invalid JSON.'}, status=400)

        # Blank fields keep their current value.
        post.title = _clean_text(body.get('title')) or post.title
        post.content = _clean_text(body.get('content')) or post.content
        is_published = body.get('isPublished')
        if is_published is not None and bool(is_published) != post.is_published:
            if is_published:
                post.publish()
            else:
                post.unpublish()

        try:
            post.full_clean(exclude=['slug'])
            persist_post(post)
        except ValidationError as exc:
            return JsonResponse({'message': _validation_message(exc)}, status=400)
        except SlugConflict:
            return JsonResponse({'message': 'Slug must be unique'}, status=409)
        except DatabaseError:
            logger.exception("Update of post %s failed", post.pk)
            return JsonResponse({'message': 'Server error updating post'}, status=500)

        return JsonResponse(serialize_post(post))

    def delete(self, request, key, *args, **kwargs):
        if not request.user.is_authenticated:
            return JsonResponse({'message': 'Not authorized, no session'}, status=401)
        post, error = self.get_owned_post(request, key, 'delete')
        if error:
            return error

        try:
            post.delete()
        except DatabaseError:
            logger.exception("Delete of post %s failed", key)
            return JsonResponse({'message': 'Server error deleting post'}, status=500)

        logger.info("Post %s deleted", key)
        return JsonResponse({'message': 'Post removed successfully'})


def api_root(request):
    """Plain-text liveness check."""
    return HttpResponse('Blog API is running', content_type='text/plain')
