"""
Models for the blog API.

Posts are written by authenticated users through the JSON API (or by staff
in the Django admin) and resolved publicly by their slug.
"""

import logging

from django.conf import settings
from django.db import models
from django.urls import reverse
from django.utils import timezone

from .slugs import unique_slug

logger = logging.getLogger(__name__)


class PostQuerySet(models.QuerySet):

    def published(self):
        """Posts that have been made public, newest publication first."""
        return self.filter(is_published=True).order_by('-published_at')

    def by_author(self, user):
        """All posts owned by ``user``, newest first."""
        return self.filter(author=user).order_by('-created_at')


class Post(models.Model):
    """
    A single blog post.

    The slug is derived from the title and is never set directly. It is
    computed when the post is first saved and recomputed only when a later
    save carries a different title.
    """

    title = models.CharField(max_length=200)
    slug = models.SlugField(
        max_length=220,
        unique=True,
        blank=True,
        editable=False,
        help_text='URL slug, generated from the title.',
    )
    content = models.TextField(help_text='Post body, stored as submitted (Markdown).')
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='blog_posts',
    )

    # Publication
    is_published = models.BooleanField(default=False)
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PostQuerySet.as_manager()

    # Title and slug as last read from / written to the database.
    _persisted_title = None
    _persisted_slug = None

    class Meta:
        ordering = ['-published_at', '-created_at']
        indexes = [
            models.Index(fields=['is_published', 'published_at'], name='blog_post_published_idx'),
        ]

    def __str__(self):
        return self.title

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._remember_persisted()
        return instance

    def _remember_persisted(self, fields=('title', 'slug')):
        # Read __dict__ directly so deferred fields are not loaded here.
        for name in fields:
            if name in self.__dict__:
                setattr(self, f'_persisted_{name}', self.__dict__[name])

    @property
    def title_changed(self):
        """True if the post is new or its title differs from the stored one."""
        return self._state.adding or self.title != self._persisted_title

    def slug_taken(self, candidate):
        """Whether a post other than this one already uses ``candidate``."""
        return Post.objects.filter(slug=candidate).exclude(pk=self.pk).exists()

    def assign_slug(self):
        """
        Set ``self.slug`` for the current title.

        Existing posts whose title is unchanged keep their stored slug; every
        other case runs the uniqueness search against all other posts.
        """
        if not self.title_changed:
            if self._persisted_slug is not None:
                self.slug = self._persisted_slug
            return self.slug
        self.slug = unique_slug(self.title, self.slug_taken)
        logger.debug("Assigned slug %r to post %s", self.slug, self.pk or '(new)')
        return self.slug

    def publish(self):
        """Mark the post public, stamping the publication time."""
        self.is_published = True
        self.published_at = timezone.now()

    def unpublish(self):
        """Hide the post; the last publication time is kept."""
        self.is_published = False

    def save(self, *args, **kwargs):
        """Assign the slug, then persist."""
        self.assign_slug()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'title' in update_fields:
            kwargs['update_fields'] = {*update_fields, 'slug'}
        super().save(*args, **kwargs)
        self._remember_persisted()

    def refresh_from_db(self, using=None, fields=None, **kwargs):
        super().refresh_from_db(using=using, fields=fields, **kwargs)
        self._remember_persisted(
            ('title', 'slug') if fields is None
            else [name for name in fields if name in ('title', 'slug')]
        )

    def get_absolute_url(self):
        """Return the canonical URL for this post."""
        return reverse('blog:post_detail', kwargs={'key': self.slug})
