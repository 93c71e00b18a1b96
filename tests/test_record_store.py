"""Tests for the record store."""

import pytest
import yaml

from calgym.records.errors import ErrorCode, StorageError, UnauthorizedError
from calgym.records.persistence import FilePersistence, InMemoryPersistence
from calgym.records.store import RecordStore, Session, dump_store, load_store
from calgym.scoring.rules import ClassLevel


def get_test_config(**limits):
    """Create a test configuration."""
    config = {
        'limits': {
            'max_students_per_class': 100,
            'max_classes_per_teacher': 50,
            'max_evaluations_per_student': 200,
        },
        'storage': {
            'key_prefix': 'test_',
            'max_backups': 10,
        },
        'settings': {
            'teacher_name': 'Default Teacher',
            'report_title': 'Floor routine test',
        },
    }
    config['limits'].update(limits)
    return config


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def store(persistence):
    return RecordStore(persistence, Session(teacher_id="teacher-1"), get_test_config())


def sample_evaluation(**overrides):
    payload = {
        "performed_a": 3, "performed_b": 2, "performed_c": 1,
        "specific_req_score": 1.0, "linking_quality": "good",
        "execution_score": 1.5, "co_cn_score": 2.0, "co_cm_score": 2.0,
    }
    payload.update(overrides)
    return payload


class TestIdentity:
    """Test that the store requires an authenticated teacher."""

    def test_reads_and_writes_need_identity(self, persistence):
        store = RecordStore(persistence, Session(), get_test_config())
        with pytest.raises(UnauthorizedError):
            store.classes()
        with pytest.raises(UnauthorizedError):
            store.add_class("2AC-1", "2AC")
        assert persistence.blobs == {}

    def test_stores_are_scoped_per_teacher(self, persistence):
        first = RecordStore(persistence, Session("alice"), get_test_config())
        second = RecordStore(persistence, Session("bob"), get_test_config())

        assert first.add_class("Gym A", "1AC").success
        assert second.classes() == {}
        assert "Gym A" in first.classes()

    def test_empty_store_uses_default_settings(self, store):
        settings = store.settings()
        assert settings.teacher_name == "Default Teacher"
        assert settings.report_title == "Floor routine test"


class TestClasses:
    """Test class operations."""

    def test_add_class(self, store):
        result = store.add_class("  2AC-1 ", "2AC")

        assert result.success
        assert store.get_class("2AC-1").level == ClassLevel.LEVEL_2

    def test_add_class_rejections(self, store):
        assert store.add_class("2AC-1", "2AC").success

        duplicate = store.add_class("2AC-1", "3AC")
        assert not duplicate.success
        assert duplicate.code == ErrorCode.ALREADY_EXISTS

        assert store.add_class("bad/name", "2AC").code == ErrorCode.INVALID_INPUT
        assert store.add_class("Other", "7AC").code == ErrorCode.INVALID_INPUT
        assert list(store.classes()) == ["2AC-1"]

    def test_class_limit(self, persistence):
        store = RecordStore(persistence, Session("t"), get_test_config(max_classes_per_teacher=2))
        assert store.add_class("A", "1AC").success
        assert store.add_class("B", "1AC").success

        result = store.add_class("C", "1AC")
        assert result.code == ErrorCode.LIMIT_EXCEEDED
        assert len(store.classes()) == 2

    def test_edit_class_cascades_rename(self, store):
        store.add_class("Old", "1AC")
        store.add_class("Untouched", "1AC")
        ids = [store.add_student(name, "Old").data for name in ("Ann", "Ben")]
        other = store.add_student("Cleo", "Untouched").data

        result = store.edit_class("Old", "New", "3AC")

        assert result.success
        assert result.data == {"students_moved": 2}
        assert "Old" not in store.classes()
        assert store.get_class("New").level == ClassLevel.LEVEL_3
        assert all(store.get_student(i).class_id == "New" for i in ids)
        assert store.get_student(other).class_id == "Untouched"
        assert not any(s.class_id == "Old" for s in store.students().values())

    def test_edit_class_level_only(self, store):
        store.add_class("A", "1AC")
        assert store.edit_class("A", "A", "2AC").success
        assert store.get_class("A").level == ClassLevel.LEVEL_2

    def test_edit_class_rejections(self, store):
        store.add_class("A", "1AC")
        store.add_class("B", "1AC")

        assert store.edit_class("A", "B", "1AC").code == ErrorCode.ALREADY_EXISTS
        assert store.edit_class("Missing", "C", "1AC").code == ErrorCode.NOT_FOUND
        assert store.edit_class("A", "", "1AC").code == ErrorCode.INVALID_INPUT
        assert store.edit_class("A", "C", "0AC").code == ErrorCode.INVALID_INPUT
        assert set(store.classes()) == {"A", "B"}

    def test_delete_class_with_students_is_blocked(self, store, persistence):
        store.add_class("A", "1AC")
        store.add_student("Ann", "A")
        before = dict(persistence.blobs)

        result = store.delete_class("A")

        assert result.code == ErrorCode.HAS_DEPENDENTS
        assert persistence.blobs == before

    def test_delete_class(self, store):
        store.add_class("A", "1AC")
        assert store.delete_class("A").success
        assert store.classes() == {}
        assert store.delete_class("A").code == ErrorCode.NOT_FOUND


class TestStudents:
    """Test student operations."""

    def test_add_student(self, store):
        store.add_class("A", "1AC")
        result = store.add_student(" Ann Lee ", "A")

        assert result.success
        student = store.get_student(result.data)
        assert student.name == "Ann Lee"
        assert student.class_id == "A"
        assert student.evaluations == []

    def test_add_student_requires_existing_class(self, store):
        result = store.add_student("Ann", "Nowhere")
        assert result.code == ErrorCode.NOT_FOUND
        assert store.classes() == {}
        assert store.students() == {}

    def test_add_student_rejections(self, store):
        store.add_class("A", "1AC")
        store.add_class("B", "1AC")
        assert store.add_student("Ann", "A").success

        assert store.add_student("Ann", "A").code == ErrorCode.ALREADY_EXISTS
        assert store.add_student("Ann", "B").success
        assert store.add_student("R2-D2", "A").code == ErrorCode.INVALID_INPUT

    def test_class_size_limit(self, persistence):
        store = RecordStore(persistence, Session("t"), get_test_config(max_students_per_class=1))
        store.add_class("A", "1AC")
        store.add_class("B", "1AC")
        assert store.add_student("Ann", "A").success

        assert store.add_student("Ben", "A").code == ErrorCode.LIMIT_EXCEEDED
        ben = store.add_student("Ben", "B").data
        assert store.edit_student(ben, "Ben", "A").code == ErrorCode.LIMIT_EXCEEDED

    def test_edit_student(self, store):
        store.add_class("A", "1AC")
        store.add_class("B", "2AC")
        student_id = store.add_student("Ann", "A").data

        assert store.edit_student(student_id, "Anne", "B").success
        student = store.get_student(student_id)
        assert (student.name, student.class_id) == ("Anne", "B")

    def test_edit_student_rejections(self, store):
        store.add_class("A", "1AC")
        ann = store.add_student("Ann", "A").data
        store.add_student("Ben", "A")

        assert store.edit_student("nobody", "Ann", "A").code == ErrorCode.NOT_FOUND
        assert store.edit_student(ann, "Ann", "Missing").code == ErrorCode.NOT_FOUND
        assert store.edit_student(ann, "Ben", "A").code == ErrorCode.ALREADY_EXISTS
        assert store.edit_student(ann, "", "A").code == ErrorCode.INVALID_INPUT
        # keeping the same name is not a collision with itself
        assert store.edit_student(ann, "Ann", "A").success

    def test_delete_student(self, store):
        store.add_class("A", "1AC")
        student_id = store.add_student("Ann", "A").data

        assert store.delete_student(student_id).success
        assert store.get_student(student_id) is None
        assert store.delete_student(student_id).code == ErrorCode.NOT_FOUND
        assert store.delete_class("A").success


class TestEvaluations:
    """Test evaluation operations."""

    @pytest.fixture
    def student_id(self, store):
        store.add_class("A", "1AC")
        return store.add_student("Ann", "A").data

    def test_save_evaluation_uses_class_level(self, store, student_id):
        result = store.save_evaluation(student_id, sample_evaluation())

        assert result.success
        assert result.data == 0
        evaluation = store.get_student(student_id).evaluations[0]
        assert evaluation.level == ClassLevel.LEVEL_1
        # 1AC: 3A x 1.0 + 2B x 1.5, no C required
        assert evaluation.difficulty_score == pytest.approx(6.0)
        assert evaluation.linking_score == 3.5
        assert evaluation.total_score == pytest.approx(6.0 + 1.0 + 3.5 + 1.5 + 2.0 + 2.0)

    def test_explicit_level_is_kept(self, store, student_id):
        store.save_evaluation(student_id, sample_evaluation(level="3AC"))
        assert store.get_student(student_id).evaluations[0].level == ClassLevel.LEVEL_3

    def test_save_evaluation_rejections(self, store, student_id):
        assert store.save_evaluation("nobody", sample_evaluation()).code == ErrorCode.NOT_FOUND
        assert store.save_evaluation(student_id, "junk").code == ErrorCode.INVALID_INPUT
        assert store.get_student(student_id).evaluations == []

    def test_evaluations_append_in_order(self, store, student_id):
        for execution in (0.5, 1.0, 1.5):
            store.save_evaluation(student_id, sample_evaluation(execution_score=execution))

        history = store.get_student(student_id).evaluations
        assert [e.execution_score for e in history] == [0.5, 1.0, 1.5]
        assert store.get_student(student_id).latest_evaluation.execution_score == 1.5

    def test_evaluation_limit(self, persistence):
        store = RecordStore(persistence, Session("t"), get_test_config(max_evaluations_per_student=3))
        store.add_class("A", "2AC")
        student_id = store.add_student("Ann", "A").data
        for _ in range(3):
            assert store.save_evaluation(student_id, sample_evaluation()).success

        result = store.save_evaluation(student_id, sample_evaluation())

        assert result.code == ErrorCode.LIMIT_EXCEEDED
        assert len(store.get_student(student_id).evaluations) == 3

    def test_delete_evaluation_shifts_later_entries(self, store, student_id):
        for execution in (0.5, 1.0, 1.5):
            store.save_evaluation(student_id, sample_evaluation(execution_score=execution))

        assert store.delete_evaluation(student_id, 1).success
        history = store.get_student(student_id).evaluations
        assert [e.execution_score for e in history] == [0.5, 1.5]

    def test_delete_evaluation_rejections(self, store, student_id):
        store.save_evaluation(student_id, sample_evaluation())

        assert store.delete_evaluation(student_id, 1).code == ErrorCode.NOT_FOUND
        assert store.delete_evaluation(student_id, -1).code == ErrorCode.NOT_FOUND
        assert store.delete_evaluation("nobody", 0).code == ErrorCode.NOT_FOUND
        assert len(store.get_student(student_id).evaluations) == 1


class TestBackups:
    """Test write-through snapshots."""

    def test_every_mutation_takes_a_snapshot(self, store):
        store.add_class("A", "1AC")
        store.add_student("Ann", "A")

        backups = store.list_backups()
        assert len(backups) == 2
        assert backups[0].data.classes == {}
        assert list(backups[1].data.classes) == ["A"]
        assert backups[1].data.students == {}

    def test_failed_operations_take_no_snapshot(self, store):
        store.add_class("A", "1AC")
        store.add_class("A", "1AC")
        store.delete_class("Missing")
        assert len(store.list_backups()) == 1

    def test_backups_are_pruned_oldest_first(self, persistence):
        config = get_test_config()
        config['storage']['max_backups'] = 3
        store = RecordStore(persistence, Session("t"), config)
        for name in ("A", "B", "C", "D", "E"):
            store.add_class(name, "1AC")

        backups = store.list_backups()
        assert len(backups) == 3
        # the snapshots taken before adding C, D and E survive
        assert [sorted(b.data.classes) for b in backups] == [
            ["A", "B"], ["A", "B", "C"], ["A", "B", "C", "D"]
        ]

    def test_restore_backup(self, store):
        store.add_class("A", "1AC")
        store.add_student("Ann", "A")

        assert store.restore_backup().success
        assert list(store.classes()) == ["A"]
        assert store.students() == {}
        # the restore itself is undoable
        assert len(store.list_backups()[-1].data.students) == 1

    def test_restore_missing_backup(self, store):
        assert store.restore_backup().code == ErrorCode.NOT_FOUND
        store.add_class("A", "1AC")
        assert store.restore_backup(5).code == ErrorCode.NOT_FOUND


class TestSettings:
    """Test report settings."""

    def test_update_settings(self, store):
        assert store.update_settings("Pr. Smith", "Spring floor test").success
        assert store.settings().teacher_name == "Pr. Smith"

    def test_update_settings_rejections(self, store):
        assert store.update_settings("X", "Spring floor test").code == ErrorCode.INVALID_INPUT
        assert store.update_settings("Pr. Smith", "Tiny").code == ErrorCode.INVALID_INPUT


class TestSerialization:
    """Test persistence round-trips."""

    def test_round_trip(self, store):
        store.add_class("A", "2AC")
        student_id = store.add_student("Ann", "A").data
        store.save_evaluation(student_id, sample_evaluation(linking_quality="excellent"))
        store.save_evaluation(student_id, sample_evaluation(performed_c=4))

        data = store.snapshot()
        reloaded = load_store(dump_store(data))

        assert reloaded == data
        assert reloaded.students[student_id].evaluations == data.students[student_id].evaluations

    def test_second_store_sees_persisted_state(self, store, persistence):
        store.add_class("A", "2AC")
        student_id = store.add_student("Ann", "A").data
        store.save_evaluation(student_id, sample_evaluation())

        other = RecordStore(persistence, Session("teacher-1"), get_test_config())
        assert other.snapshot() == store.snapshot()

    def test_blob_is_yaml(self, store, persistence):
        store.add_class("A", "3AC")
        payload = yaml.safe_load(persistence.load(store.data_key))
        assert payload["classes"]["A"] == {"name": "A", "level": "3AC"}

    def test_corrupted_blob_raises_storage_error(self, store, persistence):
        persistence.store(store.data_key, "classes: [unclosed")
        with pytest.raises(StorageError):
            store.classes()

        persistence.store(store.data_key, "- just\n- a list\n")
        with pytest.raises(StorageError):
            store.classes()

    def test_undecodable_file_raises_storage_error(self, tmp_path):
        persistence = FilePersistence(tmp_path)
        store = RecordStore(persistence, Session("teacher-1"), get_test_config())
        persistence.path_for(store.data_key).write_bytes(b"classes: \xff\xfe\n")

        with pytest.raises(StorageError):
            store.classes()

    def test_persistence_failure_raises_storage_error(self, store):
        class BrokenPersistence(InMemoryPersistence):
            def store(self, key, blob):
                raise OSError("disk full")

        broken = RecordStore(BrokenPersistence(), Session("t"), get_test_config())
        with pytest.raises(StorageError, match="disk full"):
            broken.add_class("A", "1AC")
