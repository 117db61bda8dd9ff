"""Tests for project-level reads and writes."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import make_store


def _tab_modified(store, project_id: str):
    tab = store.document.tab_for(project_id)
    return store.grid.get_cell(tab, 6, "B")


class TestCreateAndLoad:
    def test_create_onboarding(self, store):
        result = store.document.create("Onboarding v1")
        assert result.success is True
        assert result.project_id
        assert result.project_tab_name == "Onboarding v1"

        project = store.document.load(result.project_id)
        assert project.title == "Onboarding v1"
        assert project.slides == []
        assert project.elements == []
        assert project.error is None

    def test_create_registers_folders(self, store):
        result = store.document.create("Course")
        folder = store.storage.get_folder(result.project_folder_id)
        assert folder.name == f"Course ({result.project_id})"
        assert store.storage.get_folder(result.media_folder_id).parent_id == folder.folder_id
        assert store.document.load(result.project_id).folder_id == folder.folder_id

    def test_blank_title_rejected(self, store):
        result = store.document.create("   ")
        assert result.success is False
        assert result.message == "Project name cannot be empty"

    def test_duplicate_title_rejected(self, store, project):
        result = store.document.create("Course")
        assert result.success is False
        assert len(store.index.list_all()) == 1

    def test_load_unknown_project(self, store):
        assert store.document.load("nope") is None

    def test_missing_tab_is_reported(self, store, project):
        store.grid.delete_tab("Course")
        loaded = store.document.load(project)
        assert loaded is not None
        assert loaded.error
        assert loaded.slides == [] and loaded.elements == []

    def test_folder_failure_rolls_back(self, tmp_path: Path):
        from trainbook.errors import StorageError
        from trainbook.storage import LocalFolderStorage

        class BrokenStorage(LocalFolderStorage):
            def create_project_folders(self, project_id, title):
                raise StorageError("quota exceeded")

        store = make_store(tmp_path, BrokenStorage(tmp_path / "storage"))
        result = store.document.create("Course")
        assert result.success is False
        assert "quota exceeded" in result.message
        assert not store.grid.has_tab("Course")
        assert store.index.list_all() == []

    def test_title_differing_only_in_case_rejected(self, store, project):
        result = store.document.create("course")
        assert result.success is False
        assert "already exists" in result.message
        assert store.grid.list_tabs() == ["Template", "ProjectIndex", "Course"]
        assert len(store.index.list_all()) == 1
        assert store.document.load(project).error is None

    def test_index_failure_rolls_back_tab_and_folders(self, store, monkeypatch):
        from trainbook.errors import GridError

        def refuse(entry):
            raise GridError("index tab locked")

        monkeypatch.setattr(store.index, "upsert", refuse)
        result = store.document.create("Course")

        assert result.success is False
        assert "index tab locked" in result.message
        assert not store.grid.has_tab("Course")
        assert store.index.list_all() == []
        project_folders = [f for f in store.storage.list_folders() if f.name.startswith("Course (")]
        assert len(project_folders) == 1
        assert project_folders[0].trashed is True

    def test_index_and_tab_timestamps_agree(self, store, project):
        entry = store.index.get(project)
        assert entry.modified_at == _tab_modified(store, project)
        assert entry.created_at == entry.modified_at


class TestUpdate:
    def test_round_trip(self, store, project):
        from trainbook.models import Element, Slide, Timeline

        slides = [Slide(slide_id="s1", title="One", slide_number=1), Slide(slide_id="s2", title="Two", slide_number=2)]
        elements = [
            Element(element_id="e1", slide_id="s1", nickname="Box", text="Hi", timeline=Timeline(start_time=1, end_time=4)),
            Element(element_id="e2", slide_id="s2", nickname="Dot", type="Circle", initially_hidden=True),
        ]
        result = store.document.update(project, {"slides": slides, "elements": elements})
        assert result.success
        assert result.updated_fields == ["slides", "elements"]

        loaded = store.document.load(project)
        assert [s.title for s in loaded.slides] == ["One", "Two"]
        assert [(e.element_id, e.nickname) for e in loaded.elements] == [("e1", "Box"), ("e2", "Dot")]
        assert loaded.elements[0].timeline.end_time == 4
        assert loaded.elements[0].timeline.element_id == "e1"
        assert loaded.elements[1].timeline is None
        assert loaded.elements[1].initially_hidden is True

    def test_accepts_camel_case_payload(self, store, project):
        payload = {
            "slides": [{"slideId": "s1", "title": "Intro", "slideNumber": 1, "backgroundColor": "#000000"}],
        }
        assert store.document.update(project, payload).success
        slide = store.document.load(project).slides[0]
        assert slide.background_color == "#000000"

    def test_modified_written_to_both(self, store, project):
        from trainbook.models import Slide

        store.document.update(project, {"slides": [Slide(title="x")]})
        assert store.index.get(project).modified_at == _tab_modified(store, project)

    def test_rename(self, store, project):
        folder_id = store.document.folder_id(project)
        result = store.document.update(project, {"title": "Course 2"})

        assert result.success
        assert result.project_tab_name == "Course 2"
        assert store.grid.has_tab("Course 2")
        assert not store.grid.has_tab("Course")
        assert store.index.get(project).title == "Course 2"
        assert store.document.load(project).title == "Course 2"
        assert store.storage.get_folder(folder_id).name == f"Course 2 ({project})"

    def test_rename_onto_existing_tab_keeps_old_title(self, store, project):
        store.document.create("Taken")
        result = store.document.update(project, {"title": "Taken"})
        assert result.success
        assert "title" not in result.updated_fields
        assert store.index.get(project).title == "Course"
        assert store.document.load(project).error is None

    def test_rename_changing_only_case(self, store, project):
        result = store.document.update(project, {"title": "COURSE"})
        assert result.success
        assert result.updated_fields == ["title"]
        assert "COURSE" in store.grid.list_tabs()
        assert "Course" not in store.grid.list_tabs()
        loaded = store.document.load(project)
        assert loaded.error is None
        assert loaded.title == "COURSE"

    def test_rename_onto_title_differing_in_case(self, store, project):
        other = store.document.create("Other").project_id
        result = store.document.update(other, {"title": "course"})
        assert result.success
        assert store.index.get(other).title == "Other"
        assert store.document.load(other).error is None
        assert store.document.load(project).error is None

    def test_folder_rename_failure_still_finishes(self, tmp_path: Path):
        from trainbook.storage import LocalFolderStorage

        class DiskFull(LocalFolderStorage):
            def rename_folder(self, folder_id, name):
                raise OSError("disk full")

        store = make_store(tmp_path, DiskFull(tmp_path / "storage"))
        project = store.document.create("Course").project_id
        result = store.document.update(project, {"title": "Renamed"})

        assert result.success
        assert result.updated_fields == ["title"]
        assert store.index.get(project).title == "Renamed"
        assert store.index.get(project).modified_at == _tab_modified(store, project)

    def test_invalid_payload_is_a_failure(self, store, project):
        result = store.document.update(project, {"slides": "not a list"})
        assert result.success is False
        assert result.message.startswith("Invalid project update")

    def test_index_write_failure_after_tab_write(self, store, project, monkeypatch):
        from trainbook.errors import GridError

        def refuse(project_id, field, value):
            raise GridError("index tab locked")

        monkeypatch.setattr(store.index, "set_field", refuse)
        result = store.document.add_slide(project, {"title": "Intro"})

        assert result.success is False
        assert "index tab locked" in result.message
        monkeypatch.undo()
        assert store.index.find(project).found is True
        loaded = store.document.load(project)
        assert loaded.error is None
        assert [s.title for s in loaded.slides] == ["Intro"]

    def test_unknown_project(self, store):
        assert store.document.update("nope", {"title": "x"}).success is False


class TestDelete:
    def test_idempotent(self, store, project):
        first = store.document.delete(project)
        second = store.document.delete(project)
        assert first.success and second.success
        assert store.index.find(project).found is False
        assert not store.grid.has_tab("Course")

    def test_missing_tab_still_deletes_row(self, store, project):
        store.grid.delete_tab("Course")
        assert store.document.delete(project).success
        assert store.index.find(project).found is False

    def test_purge_trashes_folder(self, store, project):
        folder_id = store.document.folder_id(project)
        store.document.delete(project, purge_storage=True)
        assert store.storage.get_folder(folder_id).trashed is True

    def test_folder_kept_without_purge(self, store, project):
        folder_id = store.document.folder_id(project)
        store.document.delete(project)
        assert store.storage.get_folder(folder_id).trashed is False


class TestSlides:
    def test_add_intro(self, store, project):
        result = store.document.add_slide(project, {"title": "Intro"})
        assert result.success
        slides = store.document.load(project).slides
        assert slides[0].title == "Intro"
        assert slides[0].slide_number == 1

    def test_defaults(self, store, project):
        store.document.add_slide(project)
        slide = store.document.add_slide(project).slide
        assert slide.title == "Slide 2"
        assert slide.slide_number == 2
        assert slide.background_color == "#FFFFFF"
        assert slide.show_controls is False

    def test_sorted_by_number_not_position(self, store, project):
        a = store.document.add_slide(project, {"title": "A"}).slide
        b = store.document.add_slide(project, {"title": "B"}).slide
        store.document.update_slide(project, a.slide_id, {"slideNumber": 2})
        store.document.update_slide(project, b.slide_id, {"slideNumber": 1})
        assert [s.title for s in store.document.load(project).slides] == ["B", "A"]

    def test_update(self, store, project):
        slide = store.document.add_slide(project).slide
        result = store.document.update_slide(project, slide.slide_id, {"title": "Renamed", "slideId": "hijack"})
        assert result.slide.title == "Renamed"
        assert result.slide.slide_id == slide.slide_id
        assert store.document.update_slide(project, "missing", {"title": "x"}).success is False

    def test_soft_delete(self, store, project):
        slide = store.document.add_slide(project, {"title": "Intro"}).slide
        result = store.document.delete_slide(project, slide.slide_id)
        assert result.success
        loaded = store.document.load(project).slides
        assert len(loaded) == 1
        assert loaded[0].title == "[DELETED] Intro"
        assert loaded[0].deleted is True

        again = store.document.delete_slide(project, slide.slide_id)
        assert again.success
        assert store.document.load(project).slides[0].title == "[DELETED] Intro"


class TestElements:
    def test_invalid_fields_are_a_failure(self, store, project):
        slide = store.document.add_slide(project).slide
        result = store.document.add_element(project, slide.slide_id, {"left": "abc"})
        assert result.success is False
        assert result.message.startswith("Invalid element: left")
        assert store.document.load(project).elements == []

    def test_add_and_soft_delete(self, store, project):
        slide = store.document.add_slide(project).slide
        element = store.document.add_element(project, slide.slide_id, {"type": "rectangle"}).element

        result = store.document.delete_element(project, element.element_id)
        assert result.success
        loaded = store.document.load(project).elements
        assert len(loaded) == 1
        assert loaded[0].nickname.startswith("[DELETED]")
        assert loaded[0].opacity == 0
        assert loaded[0].initially_hidden is True
        assert loaded[0].type == "rectangle"

    def test_defaults(self, store, project):
        slide = store.document.add_slide(project).slide
        element = store.document.add_element(project, slide.slide_id).element
        assert element.nickname == "Element 1"
        assert element.sequence == 1
        assert (element.left, element.top, element.width, element.height) == (100, 100, 100, 60)
        assert element.color == "#4285F4"
        assert element.triggers == "Click"
        assert element.interaction_type == "Reveal"

        loaded = store.document.load(project).elements[0]
        assert loaded.opacity == 100
        assert loaded.font == "Roboto"
        assert loaded.slide_id == slide.slide_id

    def test_sequence_counts_per_slide(self, store, project):
        s1 = store.document.add_slide(project).slide
        s2 = store.document.add_slide(project).slide
        store.document.add_element(project, s1.slide_id)
        store.document.add_element(project, s1.slide_id)
        third = store.document.add_element(project, s2.slide_id).element
        assert third.sequence == 1
        assert third.nickname == "Element 3"

    def test_column_discovery(self, store, project):
        slide = store.document.add_slide(project).slide
        ids = [store.document.add_element(project, slide.slide_id).element.element_id for _ in range(3)]

        tab = store.document.tab_for(project)
        store.grid.set_cell(tab, 2, "F", "")
        loaded = [e.element_id for e in store.document.load(project).elements]
        assert loaded == [ids[0], ids[2]]

        added = store.document.add_element(project, slide.slide_id).element
        assert store.template.find_element_column(tab, added.element_id) == 6

    def test_update(self, store, project):
        slide = store.document.add_slide(project).slide
        element = store.document.add_element(project, slide.slide_id).element
        result = store.document.update_element(
            project, element.element_id, {"text": "Hello", "fontSize": 18, "elementId": "x"}
        )
        assert result.element.text == "Hello"
        assert result.element.font_size == 18
        assert result.element.element_id == element.element_id

    def test_quiz_read_for_quiz_elements(self, store, project):
        slide = store.document.add_slide(project).slide
        element = store.document.add_element(
            project,
            slide.slide_id,
            {
                "interactionType": "Quiz",
                "quiz": {"questionType": "True/False", "questionText": "Sky is blue?", "correctAnswer": "True", "points": 5},
            },
        ).element
        loaded = store.document.load(project).elements[0]
        assert loaded.element_id == element.element_id
        assert loaded.quiz.question_text == "Sky is blue?"
        assert loaded.quiz.points == 5

    def test_quiz_ignored_for_other_interactions(self, store, project):
        slide = store.document.add_slide(project).slide
        store.document.add_element(
            project, slide.slide_id, {"interactionType": "Reveal", "quiz": {"questionText": "?"}}
        )
        assert store.document.load(project).elements[0].quiz is None

    def test_unknown_project(self, store):
        assert store.document.add_element("nope", "s").success is False


class TestProjectExtras:
    def test_open_touches_last_accessed(self, store, project):
        store.index.set_field(project, "LAST_ACCESSED", 1)
        opened = store.document.open(project)
        assert opened.last_accessed > 1
        assert store.index.get(project).last_accessed == opened.last_accessed
        assert store.document.open("nope") is None

    def test_publish(self, store, project):
        result = store.document.publish(project)
        assert result.web_app_url == f"https://example.com/exec?project={project}"
        assert store.document.load(project).web_app_url == result.web_app_url

    def test_publish_without_base_url(self, store, project):
        store.document.publish_base_url = None
        assert store.document.publish(project).success is False

    def test_tracking(self, store, project):
        result = store.document.update_tracking(
            project, {"trackCompletion": True, "passingScore": 80, "instructorEmail": "t@example.com"}
        )
        assert result.success
        tracking = store.document.load(project).tracking
        assert tracking.track_completion is True
        assert tracking.passing_score == 80
        assert tracking.instructor_email == "t@example.com"

    def test_list_projects(self, store, project):
        store.document.create("Second")
        assert [e.title for e in store.document.list_projects()] == ["Course", "Second"]

    @pytest.mark.parametrize("title", ["Onboarding v1", "Safety: 2024", "x" * 45])
    def test_any_title_loads(self, store, title):
        result = store.document.create(title)
        assert store.document.load(result.project_id).title == title
