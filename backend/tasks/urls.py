from django.urls import path
from .views import (
    EditorView,
    ExportAPIView,
    ImportAPIView,
    ImportView,
    TaskDetailAPIView,
    TaskListAPIView,
)

app_name = "tasks"

urlpatterns = [
    path("", EditorView.as_view(), name="editor"),
    path("import/", ImportView.as_view(), name="import"),
    path("api/tasks/", TaskListAPIView.as_view(), name="api-tasks"),
    path("api/tasks/<int:index>/", TaskDetailAPIView.as_view(), name="api-task-detail"),
    path("api/export/", ExportAPIView.as_view(), name="api-export"),
    path("api/import/", ImportAPIView.as_view(), name="api-import"),
]
