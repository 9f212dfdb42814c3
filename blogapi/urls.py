from django.contrib import admin
from django.contrib.sitemaps.views import sitemap
from django.urls import include, path

from blog.views import api_root
from blogapi.sitemaps import PublishedPostSitemap

SITEMAPS = {
    'blog': PublishedPostSitemap,
}

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', api_root, name='api_root'),
    path('sitemap.xml', sitemap, {'sitemaps': SITEMAPS}, name='django.contrib.sitemaps.views.sitemap'),
    path('api/blogs/', include('blog.urls')),
]
