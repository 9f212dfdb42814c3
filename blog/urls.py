"""URL configuration for the blog API."""

from django.urls import path

from . import views

app_name = 'blog'

urlpatterns = [
    # Published posts (GET) and post creation (POST)
    path('', views.PostCollectionView.as_view(), name='post_list'),
    # The logged-in user's posts
    path('user/', views.UserPostListView.as_view(), name='user_posts'),
    # Owner-only fetch by id, for editing
    path('id/<int:pk>/', views.PostEditView.as_view(), name='post_edit'),
    # GET by slug; PUT/DELETE by id
    path('<str:key>/', views.PostResourceView.as_view(), name='post_detail'),
]
