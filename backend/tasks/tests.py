# backend/tasks/tests.py
import json

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, override_settings
from django.urls import reverse
from hypothesis import given, settings
from hypothesis import strategies as st
from rest_framework.test import APIClient

from .errors import StaleRevisionError, TaskBuilderError, TaskParseError, TaskValidationError
from .exporter import EXPORT_SETTINGS, build_export_document, export_response, render_export_json
from .importer import import_from_text, import_into_store
from .logic import TASK_FIELDS, blank_task, invalid_task_indices, is_valid
from .store import SESSION_KEY, TaskListStore


def make_task(value="x", **overrides):
    task = {field: value for field in TASK_FIELDS}
    task.update(overrides)
    return task


# valid JSON whose string cannot be encoded as UTF-8
LONE_SURROGATE_DOCUMENT = r'{"Tasks":[{"SourcePath":"\ud800","TargetPath":"t","TargetList":"l","TargetListRelativePath":"r"}]}'

# negative and out-of-range indices included
store_operations = st.lists(
    st.one_of(
        st.just(("add", None)),
        st.tuples(st.just("remove"), st.integers(min_value=-3, max_value=12)),
    ),
    max_size=40,
)


class StoreTests(SimpleTestCase):
    def test_starts_with_one_blank_task(self):
        store = TaskListStore()
        self.assertEqual(store.tasks, [blank_task()])
        self.assertFalse(store.can_remove)

    @settings(max_examples=200, deadline=None)
    @given(ops=store_operations)
    def test_length_tracks_adds_and_valid_removes(self, ops):
        store = TaskListStore(tasks=[])
        adds = valid_removes = 0
        for op, idx in ops:
            if op == "add":
                store.add_task()
                adds += 1
            else:
                in_range = 0 <= idx < len(store)
                removed = store.remove_task(idx)
                self.assertEqual(removed, in_range)
                valid_removes += removed
        self.assertEqual(len(store), adds - valid_removes)
        self.assertEqual(store.revision, adds + valid_removes)

    def test_remove_shifts_following_tasks(self):
        store = TaskListStore(tasks=[make_task("a"), make_task("b"), make_task("c")])
        self.assertTrue(store.remove_task(1))
        self.assertEqual([t["SourcePath"] for t in store.tasks], ["a", "c"])

    def test_update_field_is_verbatim(self):
        store = TaskListStore()
        self.assertTrue(store.update_field(0, "TargetPath", "  /sites/hr  "))
        self.assertEqual(store.tasks[0]["TargetPath"], "  /sites/hr  ")

    def test_update_field_out_of_range_is_noop(self):
        store = TaskListStore()
        self.assertFalse(store.update_field(3, "SourcePath", "x"))
        self.assertEqual(store.tasks, [blank_task()])

    def test_update_unknown_field_rejected(self):
        store = TaskListStore()
        with self.assertRaises(ValueError):
            store.update_field(0, "Settings", "x")

    def test_every_mutation_produces_new_list(self):
        store = TaskListStore()
        seen = [store._tasks]
        store.add_task()
        seen.append(store._tasks)
        store.update_field(1, "SourcePath", "s")
        seen.append(store._tasks)
        store.remove_task(0)
        seen.append(store._tasks)
        store.replace_all([make_task()])
        seen.append(store._tasks)
        self.assertEqual(len({id(lst) for lst in seen}), len(seen))
        self.assertEqual(seen[0], [blank_task()])

    def test_snapshot_is_detached(self):
        store = TaskListStore()
        snapshot = store.tasks
        snapshot[0]["SourcePath"] = "changed"
        self.assertEqual(store.tasks[0]["SourcePath"], "")

    def test_revision_moves_on_structural_changes_only(self):
        store = TaskListStore()
        store.update_field(0, "SourcePath", "s")
        self.assertEqual(store.revision, 0)
        store.add_task()
        store.remove_task(0)
        store.replace_all([])
        self.assertEqual(store.revision, 3)
        with self.assertRaises(StaleRevisionError) as ctx:
            store.check_revision(1)
        self.assertEqual(ctx.exception.as_dict()["revision"], 3)
        self.assertIsInstance(ctx.exception, TaskBuilderError)
        store.check_revision(3)
        store.check_revision(None)

    def test_session_round_trip(self):
        session = {}
        store = TaskListStore(tasks=[make_task("a")], revision=4)
        store.save(session)
        loaded = TaskListStore.load(session)
        self.assertEqual(loaded.tasks, [make_task("a")])
        self.assertEqual(loaded.revision, 4)

    def test_load_ignores_garbage_in_session(self):
        store = TaskListStore.load({SESSION_KEY: "nonsense"})
        self.assertEqual(store.tasks, [blank_task()])


class ValidatorTests(SimpleTestCase):
    def test_surrounding_whitespace_is_allowed(self):
        task = {"SourcePath": " a ", "TargetPath": "b", "TargetList": "c", "TargetListRelativePath": "d"}
        self.assertTrue(is_valid(task))

    def test_whitespace_only_field_is_invalid(self):
        task = {"SourcePath": " a ", "TargetPath": "   ", "TargetList": "c", "TargetListRelativePath": "d"}
        self.assertFalse(is_valid(task))

    def test_missing_field_is_invalid(self):
        self.assertFalse(is_valid({"SourcePath": "a"}))

    def test_invalid_task_indices(self):
        tasks = [make_task(), make_task(TargetList=""), make_task(), blank_task()]
        self.assertEqual(invalid_task_indices(tasks), [1, 3])


class ExporterTests(SimpleTestCase):
    def test_single_task_document(self):
        doc = build_export_document([make_task("x")])
        self.assertEqual(len(doc["Tasks"]), 1)
        record = doc["Tasks"][0]
        for field in TASK_FIELDS:
            self.assertEqual(record[field], "x")
        self.assertEqual(record["Settings"], {
            "DefaultPackageFileCount": 0,
            "MigrateSiteSettings": 0,
            "MigrateRootFolder": True,
        })

    def test_values_are_not_trimmed(self):
        doc = build_export_document([make_task(" x ")])
        self.assertEqual(doc["Tasks"][0]["SourcePath"], " x ")

    def test_invalid_task_blocks_export(self):
        with self.assertRaises(TaskValidationError) as ctx:
            build_export_document([make_task(), make_task(TargetList="")])
        self.assertEqual(ctx.exception.invalid_indices, [1])
        self.assertEqual(ctx.exception.invalid_count, 1)
        self.assertEqual(str(ctx.exception), "Please fill in all fields for each task before downloading.")

    def test_settings_block_not_shared(self):
        doc = build_export_document([make_task(), make_task()])
        doc["Tasks"][0]["Settings"]["MigrateRootFolder"] = False
        self.assertTrue(doc["Tasks"][1]["Settings"]["MigrateRootFolder"])
        self.assertTrue(EXPORT_SETTINGS["MigrateRootFolder"])

    def test_rendered_json_key_order_and_indent(self):
        text = render_export_json(build_export_document([make_task("é")]))
        self.assertTrue(text.startswith('{\n  "Tasks": [\n    {\n      "SourcePath": "é",'))
        record = json.loads(text)["Tasks"][0]
        self.assertEqual(list(record), list(TASK_FIELDS) + ["Settings"])
        self.assertEqual(list(record["Settings"]), ["DefaultPackageFileCount", "MigrateSiteSettings", "MigrateRootFolder"])

    def test_download_response(self):
        response = export_response([make_task()])
        self.assertEqual(response["Content-Type"], "application/json; charset=utf-8")
        self.assertEqual(response["Content-Disposition"], 'attachment; filename="migration-tasks.json"')
        self.assertEqual(json.loads(response.content.decode("utf-8"))["Tasks"][0]["TargetList"], "x")

    @override_settings(MIGRATION_EXPORT_FILENAME="hr-site.json")
    def test_download_filename_from_settings(self):
        response = export_response([make_task()])
        self.assertEqual(response["Content-Disposition"], 'attachment; filename="hr-site.json"')


class ImporterTests(SimpleTestCase):
    def test_missing_fields_default_to_empty(self):
        tasks = import_from_text('{"Tasks":[{"SourcePath":"s"}]}')
        self.assertEqual(tasks, [{"SourcePath": "s", "TargetPath": "", "TargetList": "", "TargetListRelativePath": ""}])

    def test_round_trip_drops_settings(self):
        originals = [make_task("a"), make_task("b", TargetList="Docs"), make_task(" c ")]
        text = render_export_json(build_export_document(originals))
        imported = import_from_text(text)
        self.assertEqual(imported, originals)
        self.assertTrue(all("Settings" not in t for t in imported))
        self.assertEqual(render_export_json(build_export_document(imported)), text)

    def test_falsy_values_become_empty(self):
        tasks = import_from_text('{"Tasks":[{"SourcePath":null,"TargetPath":false,"TargetList":0,"TargetListRelativePath":""}]}')
        self.assertEqual(tasks, [blank_task()])

    def test_truthy_non_strings_become_text(self):
        tasks = import_from_text('{"Tasks":[{"SourcePath":5,"TargetPath":true,"TargetList":[],"TargetListRelativePath":"d"}]}')
        self.assertEqual(tasks[0], {"SourcePath": "5", "TargetPath": "true", "TargetList": "[]", "TargetListRelativePath": "d"})

    def test_non_object_elements_yield_blank_tasks(self):
        self.assertEqual(import_from_text('{"Tasks":["abc", 3]}'), [blank_task(), blank_task()])

    def test_null_element_is_a_parse_error(self):
        with self.assertRaises(TaskParseError):
            import_from_text('{"Tasks":[null]}')

    def test_syntax_error(self):
        with self.assertRaises(TaskParseError) as ctx:
            import_from_text("{not json")
        self.assertEqual(str(ctx.exception), "Failed to parse JSON file")

    def test_nan_is_not_json(self):
        with self.assertRaises(TaskParseError):
            import_from_text('{"Tasks":[{"SourcePath":NaN}]}')

    def test_bytes_with_bom(self):
        tasks = import_from_text(b'\xef\xbb\xbf{"Tasks":[{"SourcePath":"s"}]}')
        self.assertEqual(tasks[0]["SourcePath"], "s")

    def test_lone_surrogate_is_a_parse_error(self):
        with self.assertRaises(TaskParseError):
            import_from_text(LONE_SURROGATE_DOCUMENT)
        with self.assertRaises(TaskParseError):
            import_from_text(r'{"Tasks":[{"TargetList":["\udc00"]}]}')

    def test_undecodable_bytes(self):
        with self.assertRaises(TaskParseError):
            import_from_text(b"\xff\xfe\x00garbage")

    def test_no_tasks_array_is_noop(self):
        self.assertIsNone(import_from_text("{}"))
        self.assertIsNone(import_from_text('{"Tasks": {"SourcePath": "s"}}'))
        self.assertIsNone(import_from_text("[1, 2]"))

    def test_empty_tasks_array(self):
        store = TaskListStore()
        self.assertTrue(import_into_store(store, '{"Tasks": []}'))
        self.assertEqual(len(store), 0)

    def test_import_into_store_replaces_wholesale(self):
        store = TaskListStore(tasks=[make_task("old"), make_task("old")])
        self.assertTrue(import_into_store(store, '{"Tasks":[{"SourcePath":"new"}]}'))
        self.assertEqual([t["SourcePath"] for t in store.tasks], ["new"])

    def test_import_errors_leave_store_untouched(self):
        store = TaskListStore(tasks=[make_task("keep")])
        with self.assertRaises(TaskParseError):
            import_into_store(store, "{not json")
        self.assertFalse(import_into_store(store, "{}"))
        self.assertEqual(store.tasks, [make_task("keep")])
        self.assertEqual(store.revision, 0)


def editor_data(tasks, revision, action):
    data = {
        "form-TOTAL_FORMS": str(len(tasks)),
        "form-INITIAL_FORMS": str(len(tasks)),
        "form-MIN_NUM_FORMS": "0",
        "form-MAX_NUM_FORMS": "1000",
        "revision": str(revision),
        "action": action,
    }
    for idx, task in enumerate(tasks):
        for field in TASK_FIELDS:
            data[f"form-{idx}-{field}"] = task.get(field, "")
    return data


class EditorViewTests(SimpleTestCase):
    def current_tasks(self):
        return self.client.get(reverse("tasks:api-tasks")).json()["tasks"]

    def test_initial_page(self):
        response = self.client.get(reverse("tasks:editor"))
        self.assertContains(response, "SharePoint Migration JSON Builder")
        self.assertContains(response, 'placeholder="TargetListRelativePath"')
        self.assertContains(response, 'accept="application/json"')
        self.assertNotContains(response, "Remove Task")

    def test_add_keeps_edits(self):
        self.client.post(reverse("tasks:editor"), editor_data([make_task("a")], 0, "add"))
        self.assertEqual(self.current_tasks(), [make_task("a"), blank_task()])
        response = self.client.get(reverse("tasks:editor"))
        self.assertContains(response, "Remove Task", count=2)

    def test_remove(self):
        self.client.post(reverse("tasks:editor"), editor_data([make_task("a")], 0, "add"))
        self.client.post(reverse("tasks:editor"), editor_data([make_task("a"), make_task("b")], 1, "remove-0"))
        self.assertEqual(self.current_tasks(), [make_task("b")])

    def test_last_task_cannot_be_removed(self):
        self.client.post(reverse("tasks:editor"), editor_data([make_task("a")], 0, "remove-0"))
        self.assertEqual(self.current_tasks(), [make_task("a")])

    def test_stale_submission_is_discarded(self):
        self.client.post(reverse("tasks:editor"), editor_data([blank_task()], 0, "add"))
        response = self.client.post(
            reverse("tasks:editor"), editor_data([make_task("stale")], 0, "remove-0"), follow=True
        )
        self.assertContains(response, "your edits were discarded")
        self.assertEqual(self.current_tasks(), [blank_task(), blank_task()])

    def test_download(self):
        response = self.client.post(reverse("tasks:editor"), editor_data([make_task("x")], 0, "download"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Disposition"], 'attachment; filename="migration-tasks.json"')
        self.assertEqual(json.loads(response.content)["Tasks"][0]["Settings"], EXPORT_SETTINGS)

    def test_download_with_empty_field_shows_notice(self):
        response = self.client.post(
            reverse("tasks:editor"), editor_data([make_task("x", TargetList="")], 0, "download"), follow=True
        )
        self.assertContains(response, "Please fill in all fields for each task before downloading.")
        self.assertEqual(self.current_tasks(), [make_task("x", TargetList="")])

    def test_upload(self):
        upload = SimpleUploadedFile("tasks.json", b'{"Tasks":[{"SourcePath":"s1"},{"SourcePath":"s2"}]}')
        response = self.client.post(reverse("tasks:import"), {"file": upload}, follow=True)
        self.assertContains(response, "Imported 2 task(s).")
        self.assertEqual([t["SourcePath"] for t in self.current_tasks()], ["s1", "s2"])

    def test_upload_with_lone_surrogate_keeps_session_usable(self):
        self.client.post(reverse("tasks:editor"), editor_data([make_task("keep")], 0, "save"))
        upload = SimpleUploadedFile("tasks.json", LONE_SURROGATE_DOCUMENT.encode("ascii"))
        response = self.client.post(reverse("tasks:import"), {"file": upload}, follow=True)
        self.assertContains(response, "Failed to parse JSON file")
        response = self.client.get(reverse("tasks:editor"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.current_tasks(), [make_task("keep")])
        response = self.client.post(reverse("tasks:editor"), editor_data([make_task("keep")], 0, "download"))
        self.assertEqual(json.loads(response.content)["Tasks"][0]["SourcePath"], "keep")

    def test_upload_invalid_json_shows_notice(self):
        self.client.post(reverse("tasks:editor"), editor_data([make_task("keep")], 0, "save"))
        upload = SimpleUploadedFile("tasks.json", b"{not json")
        response = self.client.post(reverse("tasks:import"), {"file": upload}, follow=True)
        self.assertContains(response, "Failed to parse JSON file")
        self.assertEqual(self.current_tasks(), [make_task("keep")])


class TaskAPITests(SimpleTestCase):
    client_class = APIClient

    def test_list_and_add(self):
        response = self.client.get(reverse("tasks:api-tasks"))
        self.assertEqual(response.json(), {"tasks": [blank_task()], "revision": 0, "can_remove": False})
        response = self.client.post(reverse("tasks:api-tasks"))
        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()["tasks"]), 2)
        self.assertEqual(response.json()["revision"], 1)

    def test_patch_field(self):
        url = reverse("tasks:api-task-detail", args=[0])
        response = self.client.patch(url, {"field": "TargetList", "value": " Docs "}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["tasks"][0]["TargetList"], " Docs ")

    def test_patch_with_lone_surrogate_rejected(self):
        url = reverse("tasks:api-task-detail", args=[0])
        body = r'{"field": "SourcePath", "value": "\ud800"}'
        response = self.client.patch(url, body, content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("value", response.json()["validation_errors"])
        self.assertEqual(self.client.get(reverse("tasks:api-tasks")).json()["tasks"], [blank_task()])

    def test_import_with_lone_surrogate_rejected(self):
        url = reverse("tasks:api-import")
        response = self.client.post(url, LONE_SURROGATE_DOCUMENT, content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Failed to parse JSON file"})
        self.assertEqual(self.client.get(reverse("tasks:api-tasks")).json()["tasks"], [blank_task()])

    def test_patch_unknown_field(self):
        url = reverse("tasks:api-task-detail", args=[0])
        response = self.client.patch(url, {"field": "Settings", "value": "x"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("field", response.json()["validation_errors"])

    def test_patch_out_of_range_is_noop(self):
        url = reverse("tasks:api-task-detail", args=[7])
        response = self.client.patch(url, {"field": "SourcePath", "value": "x"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["tasks"], [blank_task()])

    def test_patch_with_stale_revision(self):
        self.client.post(reverse("tasks:api-tasks"))
        url = reverse("tasks:api-task-detail", args=[1])
        response = self.client.patch(url, {"field": "SourcePath", "value": "x", "revision": 0}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["revision"], 1)

    def test_delete(self):
        self.client.post(reverse("tasks:api-tasks"))
        self.client.patch(reverse("tasks:api-task-detail", args=[1]), {"field": "SourcePath", "value": "keep"}, format="json")
        response = self.client.delete(reverse("tasks:api-task-detail", args=[0]) + "?revision=1")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["tasks"][0]["SourcePath"], "keep")

    def test_delete_out_of_range_is_noop(self):
        self.client.post(reverse("tasks:api-tasks"))
        response = self.client.delete(reverse("tasks:api-task-detail", args=[9]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["tasks"]), 2)

    def test_delete_last_task_refused(self):
        response = self.client.delete(reverse("tasks:api-task-detail", args=[0]))
        self.assertEqual(response.status_code, 400)

    def test_export_invalid(self):
        response = self.client.get(reverse("tasks:api-export"))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["invalid_tasks"], [0])
        self.assertEqual(response.json()["invalid_count"], 1)

    def test_import_then_export(self):
        document = {"Tasks": [make_task("a"), make_task("b")]}
        response = self.client.post(reverse("tasks:api-import"), json.dumps(document), content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["imported"])

        response = self.client.get(reverse("tasks:api-export"))
        self.assertEqual(response.status_code, 200)
        exported = json.loads(response.content)
        self.assertEqual([t["SourcePath"] for t in exported["Tasks"]], ["a", "b"])
        self.assertTrue(all(t["Settings"] == EXPORT_SETTINGS for t in exported["Tasks"]))

    def test_import_multipart(self):
        upload = SimpleUploadedFile("tasks.json", b'{"Tasks":[{"TargetPath":"t"}]}', content_type="application/json")
        response = self.client.post(reverse("tasks:api-import"), {"file": upload}, format="multipart")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["tasks"], [{**blank_task(), "TargetPath": "t"}])

    def test_import_parse_error_keeps_list(self):
        self.client.patch(reverse("tasks:api-task-detail", args=[0]), {"field": "SourcePath", "value": "keep"}, format="json")
        response = self.client.post(reverse("tasks:api-import"), "{not json", content_type="application/json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Failed to parse JSON file"})
        self.assertEqual(self.client.get(reverse("tasks:api-tasks")).json()["tasks"][0]["SourcePath"], "keep")

    def test_import_without_tasks_is_silent_noop(self):
        response = self.client.post(reverse("tasks:api-import"), "{}", content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()["imported"])
        self.assertEqual(response.json()["tasks"], [blank_task()])
