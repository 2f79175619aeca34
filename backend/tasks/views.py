# backend/tasks/views.py
import logging

from django.contrib import messages
from django.shortcuts import redirect, render
from django.views import View
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .errors import StaleRevisionError, TaskParseError, TaskValidationError
from .exporter import export_response
from .forms import EditorActionForm, ImportForm, TaskFormSet
from .importer import import_into_store
from .logic import TASK_FIELDS
from .serializers import FieldUpdateSerializer, TaskListStateSerializer
from .store import TaskListStore

logger = logging.getLogger(__name__)

STALE_EDIT_NOTICE = "The task list changed since this page was loaded; your edits were discarded."


def _state(store):
    return TaskListStateSerializer({
        "tasks": store.tasks,
        "revision": store.revision,
        "can_remove": store.can_remove,
    }).data


def _apply_edits(store, formset):
    current = store.tasks
    for idx, form in enumerate(formset.forms):
        if idx >= len(current):
            break
        for field in TASK_FIELDS:
            value = form.cleaned_data.get(field, "")
            if value != current[idx][field]:
                store.update_field(idx, field, value)


class EditorView(View):
    template_name = "tasks/editor.html"

    def get(self, request):
        store = TaskListStore.load(request.session)
        return self.render_editor(request, store)

    def render_editor(self, request, store):
        context = {
            "formset": TaskFormSet(initial=store.tasks),
            "revision": store.revision,
            "can_remove": store.can_remove,
            "import_form": ImportForm(),
        }
        return render(request, self.template_name, context)

    def post(self, request):
        store = TaskListStore.load(request.session)
        action_form = EditorActionForm(request.POST)
        formset = TaskFormSet(request.POST)
        if not action_form.is_valid() or not formset.is_valid():
            messages.error(request, "The form submission was incomplete; nothing was changed.")
            return redirect("tasks:editor")

        try:
            store.check_revision(action_form.cleaned_data["revision"])
        except StaleRevisionError as exc:
            logger.warning("discarding stale editor submission: %s", exc)
            messages.warning(request, STALE_EDIT_NOTICE)
            return redirect("tasks:editor")

        _apply_edits(store, formset)
        action, index = action_form.parsed_action()
        if action == "add":
            store.add_task()
        elif action == "remove" and store.can_remove:
            store.remove_task(index)
        store.save(request.session)

        if action == "download":
            try:
                return export_response(store.tasks)
            except TaskValidationError as exc:
                logger.warning("export rejected: %d invalid task(s) %s", exc.invalid_count, exc.invalid_indices)
                messages.error(request, str(exc))
        return redirect("tasks:editor")


class ImportView(View):
    def post(self, request):
        form = ImportForm(request.POST, request.FILES)
        if not form.is_valid():
            messages.error(request, "Choose a JSON file to upload.")
            return redirect("tasks:editor")

        store = TaskListStore.load(request.session)
        try:
            imported = import_into_store(store, form.cleaned_data["file"].read())
        except TaskParseError as exc:
            messages.error(request, str(exc))
            return redirect("tasks:editor")

        if imported:
            store.save(request.session)
            messages.info(request, f"Imported {len(store)} task(s).")
        return redirect("tasks:editor")


class TaskListAPIView(APIView):
    def get(self, request):
        store = TaskListStore.load(request.session)
        return Response(_state(store), status=status.HTTP_200_OK)

    def post(self, request):
        store = TaskListStore.load(request.session)
        store.add_task()
        store.save(request.session)
        return Response(_state(store), status=status.HTTP_201_CREATED)


class TaskDetailAPIView(APIView):
    def patch(self, request, index):
        ser = FieldUpdateSerializer(data=request.data)
        if not ser.is_valid():
            return Response({"validation_errors": ser.errors}, status=status.HTTP_400_BAD_REQUEST)

        store = TaskListStore.load(request.session)
        try:
            store.check_revision(ser.validated_data["revision"])
        except StaleRevisionError as exc:
            logger.warning("discarding stale edit of task #%d: %s", index, exc)
            return Response(exc.as_dict(), status=status.HTTP_409_CONFLICT)

        if store.update_field(index, ser.validated_data["field"], ser.validated_data["value"]):
            store.save(request.session)
        return Response(_state(store), status=status.HTTP_200_OK)

    def delete(self, request, index):
        revision = request.query_params.get("revision")
        if revision is not None:
            try:
                revision = int(revision)
            except ValueError:
                return Response({"error": "revision must be an integer"}, status=status.HTTP_400_BAD_REQUEST)

        store = TaskListStore.load(request.session)
        try:
            store.check_revision(revision)
        except StaleRevisionError as exc:
            logger.warning("discarding stale removal of task #%d: %s", index, exc)
            return Response(exc.as_dict(), status=status.HTTP_409_CONFLICT)

        if index < len(store) and not store.can_remove:
            return Response({"error": "cannot remove the last task"}, status=status.HTTP_400_BAD_REQUEST)

        if store.remove_task(index):
            store.save(request.session)
        return Response(_state(store), status=status.HTTP_200_OK)


class ExportAPIView(APIView):
    def get(self, request):
        store = TaskListStore.load(request.session)
        try:
            return export_response(store.tasks)
        except TaskValidationError as exc:
            logger.warning("export rejected: %d invalid task(s) %s", exc.invalid_count, exc.invalid_indices)
            return Response(exc.as_dict(), status=status.HTTP_400_BAD_REQUEST)


class ImportAPIView(APIView):
    """
    Accepts either a multipart upload under "file" or the JSON document as the raw body.
    A document without a Tasks array is accepted and changes nothing.
    """
    def post(self, request):
        if request.content_type.startswith("multipart/form-data"):
            upload = request.FILES.get("file")
            if upload is None:
                return Response({"error": "provide the JSON document as a file under key 'file'"}, status=status.HTTP_400_BAD_REQUEST)
            contents = upload.read()
        else:
            contents = request.body

        store = TaskListStore.load(request.session)
        try:
            imported = import_into_store(store, contents)
        except TaskParseError as exc:
            return Response(exc.as_dict(), status=status.HTTP_400_BAD_REQUEST)

        if imported:
            store.save(request.session)
        return Response({**_state(store), "imported": imported}, status=status.HTTP_200_OK)
