"""
Django admin configuration for the blog app.

Staff can moderate posts here. The slug is shown but never edited: it is
regenerated from the title on save, exactly as for posts created through
the API.
"""

from django.contrib import admin
from django.utils import timezone

from .models import Post


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    """
    Admin for blog posts.

    Use the publish/unpublish actions to toggle visibility in bulk;
    publishing stamps published_at with the current time.
    """

    list_display = ('title', 'slug', 'author', 'is_published', 'published_at', 'created_at')
    list_filter = ('is_published',)
    search_fields = ('title', 'slug', 'content')
    readonly_fields = ('slug', 'created_at', 'updated_at')
    raw_id_fields = ('author',)
    date_hierarchy = 'created_at'
    list_per_page = 25
    actions = ('make_published', 'make_unpublished')

    fieldsets = (
        (None, {
            'fields': ('title', 'slug', 'author'),
        }),
        ('Content', {
            'fields': ('content',),
            'description': 'Stored verbatim; rendering is left to the client.',
        }),
        ('Publication', {
            'fields': ('is_published', 'published_at', 'created_at', 'updated_at'),
        }),
    )

    def save_model(self, request, obj, form, change):
        """Stamp published_at when a post is published without a date."""
        if obj.is_published and obj.published_at is None:
            obj.published_at = timezone.now()
        super().save_model(request, obj, form, change)

    @admin.action(description='Publish selected posts')
    def make_published(self, request, queryset):
        """Publish drafts, stamping published_at with the current time."""
        updated = queryset.filter(is_published=False).update(
            is_published=True, published_at=timezone.now(),
        )
        self.message_user(request, f'{updated} post(s) published.')

    @admin.action(description='Unpublish selected posts')
    def make_unpublished(self, request, queryset):
        """Hide posts; their last publication time is kept."""
        updated = queryset.filter(is_published=True).update(is_published=False)
        self.message_user(request, f'{updated} post(s) unpublished.')
