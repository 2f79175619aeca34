from django.urls import include, path

urlpatterns = [
    path("", include("backend.tasks.urls")),
]
