"""
Sitemap for the blog API.

Only published posts are listed; each entry points at the post's slug
endpoint, which is the canonical address handed out to clients.
"""

from django.contrib.sitemaps import Sitemap

from blog.models import Post


class PublishedPostSitemap(Sitemap):
    """One <url> per published post. Locations come from get_absolute_url()."""

    changefreq = 'weekly'
    priority = 0.6

    def items(self):
        return Post.objects.published()

    def lastmod(self, post):
        # Body edits after publication count as modifications.
        return post.updated_at
