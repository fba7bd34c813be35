"""
控制表模块测试
"""
import os
import stat
from dataclasses import replace
from datetime import date
from unittest.mock import patch

import pytest

from homemigf.config import CONTROL_COLUMNS
from homemigf.core.control_table import ControlTable, parse_bool, parse_result
from homemigf.core.errors import BackupFailed, ControlTableNotFound, ControlTableReadError, ControlTableWriteError
from homemigf.core.models import MigrationResult

CONTROL_TEXT = (
    "True;False;alice;\\\\oldfs\\home$;D:\\Homes;01.02.2026;SUCCESS;D:\\Logs\\01022026-220000_alice.log\n"
    "false;TRUE;bob;\\\\oldfs\\home$;D:\\Homes;;;\n"
    "TRUE;true;carol;\\\\oldfs\\home$;D:\\Homes;3.2.2026;failed;carol.log\n"
)


@pytest.fixture
def control_file(tmp_path):
    path = tmp_path / "control.csv"
    path.write_text(CONTROL_TEXT, encoding="utf-8")
    return path


def read_fields(path):
    return [line.split(";") for line in path.read_text(encoding="utf-8").splitlines()]


class TestParsing:
    """测试字段转换"""

    @pytest.mark.parametrize("text,expected", [
        ("True", True), ("true", True), ("TRUE", True), (" True ", True),
        ("False", False), ("false", False), ("", False),
    ])
    def test_parse_bool(self, text, expected):
        assert parse_bool(text) is expected

    def test_parse_bool_rejects_other_text(self):
        with pytest.raises(ValueError):
            parse_bool("yes please")

    def test_parse_result(self):
        assert parse_result("") == MigrationResult.UNSET
        assert parse_result("success") == MigrationResult.SUCCESS
        assert parse_result("FAILED") == MigrationResult.FAILED
        with pytest.raises(ValueError):
            parse_result("MAYBE")


class TestLoad:
    """测试读取控制文件"""

    def test_load_records_in_order(self, control_file):
        table = ControlTable.load(control_file, CONTROL_COLUMNS)

        assert [r.user_name for r in table] == ["alice", "bob", "carol"]
        alice, bob, carol = table.records
        assert alice.migration_active is True
        assert alice.finalize_migration is False
        assert alice.user_src_path == "\\\\oldfs\\home$"
        assert alice.last_migration == date(2026, 2, 1)
        assert alice.last_migration_result == MigrationResult.SUCCESS
        assert bob.migration_active is False
        assert bob.last_migration is None
        assert bob.last_migration_result == MigrationResult.UNSET
        assert carol.last_migration == date(2026, 2, 3)
        assert carol.last_migration_result == MigrationResult.FAILED

    def test_missing_file(self, tmp_path):
        with pytest.raises(ControlTableNotFound):
            ControlTable.load(tmp_path / "missing.csv", CONTROL_COLUMNS)

    def test_directory_is_read_error(self, tmp_path):
        with pytest.raises(ControlTableReadError):
            ControlTable.load(tmp_path, CONTROL_COLUMNS)

    @pytest.mark.parametrize("line", [
        "maybe;False;alice;src;dst;;;",
        "True;False;alice;src;dst;2026-02-01;;",
        "True;False;alice;src;dst;;DONE;",
        "True;False;alice;src;dst;;;log;extra",
    ])
    def test_invalid_rows(self, tmp_path, line):
        path = tmp_path / "control.csv"
        path.write_text(line + "\n", encoding="utf-8")

        with pytest.raises(ControlTableReadError, match="第 1 行"):
            ControlTable.load(path, CONTROL_COLUMNS)

    def test_short_rows_padded_and_blank_lines_skipped(self, tmp_path):
        path = tmp_path / "control.csv"
        path.write_text("True;True;alice;src;dst\n\n;;;;;;;\nFalse;False;bob;src;dst;;;\n", encoding="utf-8")

        table = ControlTable.load(path, CONTROL_COLUMNS)

        assert [r.user_name for r in table] == ["alice", "bob"]
        assert table.records[0].migration_log == ""

    def test_byte_order_mark_ignored(self, tmp_path):
        path = tmp_path / "control.csv"
        path.write_text("True;False;alice;src;dst;;;\n", encoding="utf-8-sig")

        table = ControlTable.load(path, CONTROL_COLUMNS)

        assert table.records[0].migration_active is True

    def test_custom_column_order(self, tmp_path):
        columns = ["UserName"] + [c for c in CONTROL_COLUMNS if c != "UserName"]
        path = tmp_path / "control.csv"
        path.write_text("alice;True;False;src;dst;;;\n", encoding="utf-8")

        table = ControlTable.load(path, columns)

        assert table.records[0].user_name == "alice"
        assert table.records[0].migration_active is True

    def test_invalid_columns(self, control_file):
        with pytest.raises(ValueError):
            ControlTable.load(control_file, CONTROL_COLUMNS[:-1])


class TestSave:
    """测试带备份的写回"""

    def test_unchanged_round_trip(self, control_file):
        before = read_fields(control_file)
        table = ControlTable.load(control_file, CONTROL_COLUMNS)

        backup = table.save(".14032026-093005.bak")

        assert read_fields(control_file) == before
        assert backup.name == "control.csv.14032026-093005.bak"
        assert backup.read_text(encoding="utf-8") == CONTROL_TEXT

    def test_modified_record_serialized(self, control_file):
        table = ControlTable.load(control_file, CONTROL_COLUMNS)
        table.records[2] = replace(
            table.records[2],
            migration_active=False,
            last_migration=date(2026, 3, 14),
            last_migration_result=MigrationResult.SUCCESS,
            migration_log="14032026-093005_carol.log",
        )

        table.save(".bak")

        rows = read_fields(control_file)
        assert rows[2] == ["False", "True", "carol", "\\\\oldfs\\home$", "D:\\Homes",
                           "14.03.2026", "SUCCESS", "14032026-093005_carol.log"]
        assert rows[1] == ["false", "TRUE", "bob", "\\\\oldfs\\home$", "D:\\Homes", "", "", ""]

    def test_no_type_metadata_or_header(self, control_file):
        table = ControlTable.load(control_file, CONTROL_COLUMNS)
        table.save(".bak")

        first_line = control_file.read_text(encoding="utf-8").splitlines()[0]
        assert not first_line.startswith("#TYPE")
        assert not first_line.startswith("MigrationActive")

    def test_backup_failure_leaves_original(self, control_file):
        table = ControlTable.load(control_file, CONTROL_COLUMNS)
        table.records[0] = replace(table.records[0], migration_active=False)

        with patch("homemigf.core.control_table.shutil.copy2", side_effect=OSError("disk full")):
            with pytest.raises(BackupFailed):
                table.save(".bak")

        assert control_file.read_text(encoding="utf-8") == CONTROL_TEXT
        assert list(control_file.parent.iterdir()) == [control_file]

    def test_missing_original_fails_backup(self, control_file):
        table = ControlTable.load(control_file, CONTROL_COLUMNS)
        control_file.unlink()

        with pytest.raises(BackupFailed):
            table.save(".bak")

        assert not control_file.exists()

    def test_write_failure_keeps_backup_and_original(self, control_file):
        table = ControlTable.load(control_file, CONTROL_COLUMNS)
        table.records[0] = replace(table.records[0], migration_active=False)

        with patch("homemigf.core.control_table.os.replace", side_effect=OSError("locked")):
            with pytest.raises(ControlTableWriteError):
                table.save(".bak")

        assert control_file.read_text(encoding="utf-8") == CONTROL_TEXT
        assert (control_file.parent / "control.csv.bak").read_text(encoding="utf-8") == CONTROL_TEXT
        assert sorted(p.name for p in control_file.parent.iterdir()) == ["control.csv", "control.csv.bak"]

    @pytest.mark.skipif(os.name == "nt", reason="POSIX 权限位")
    def test_file_mode_preserved(self, control_file):
        control_file.chmod(0o644)
        table = ControlTable.load(control_file, CONTROL_COLUMNS)
        table.records[0] = replace(table.records[0], migration_active=False)

        table.save(".bak")

        assert stat.S_IMODE(control_file.stat().st_mode) == 0o644

    def test_blank_lines_not_written_back(self, tmp_path):
        path = tmp_path / "control.csv"
        path.write_text("True;True;alice;src;dst;;;\n\nFalse;False;bob;src;dst;;;\n", encoding="utf-8")
        table = ControlTable.load(path, CONTROL_COLUMNS)

        table.save(".bak")

        assert path.read_text(encoding="utf-8") == "True;True;alice;src;dst;;;\nFalse;False;bob;src;dst;;;\n"

    def test_user_name_whitespace(self, tmp_path):
        path = tmp_path / "control.csv"
        path.write_text("True;True; alice ;src;dst;;;\nTrue;True; bob ;src;dst;;;\n", encoding="utf-8")
        table = ControlTable.load(path, CONTROL_COLUMNS)
        assert [r.user_name for r in table] == ["alice", "bob"]

        table.records[1] = replace(table.records[1], migration_active=False)
        table.save(".bak")

        rows = read_fields(path)
        assert rows[0][2] == " alice "
        assert rows[1][2] == "bob"
