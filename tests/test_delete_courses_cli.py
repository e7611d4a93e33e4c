import io
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scripts import delete_courses


def _seed(database, *names):
    return [database.insert("INSERT INTO courses (course_name, subject_area) VALUES (?, 'General')", (name,)) for name in names]


def _active_ids(database):
    return [row["course_id"] for row in database.query("SELECT course_id FROM courses WHERE is_active = 1 ORDER BY course_id")]


def test_list_prints_table(temp_db, database, capsys):
    _seed(database, "Intro to Biology", "Statistics")
    exit_code = delete_courses.main(["--list", "--db", temp_db])
    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Published Courses:" in out
    assert "Intro to Biology" in out
    assert "Total: 2 courses" in out


def test_delete_specific_ids_after_confirmation(temp_db, database, capsys):
    first, second, third = _seed(database, "A", "B", "C")
    exit_code = delete_courses.main([str(first), str(third), "--db", temp_db], stdin=io.StringIO("YES\n"))
    out = capsys.readouterr().out
    assert exit_code == 0
    assert f"Deleting: [{first}] A... DELETED" in out
    assert "Deleted 2 course(s)." in out
    assert database.query("SELECT course_id FROM courses") == [{"course_id": second}]


def test_invalid_and_missing_ids(temp_db, database, capsys):
    (course_id,) = _seed(database, "Only")
    exit_code = delete_courses.main(["abc", "404", "--db", temp_db], stdin=io.StringIO("yes\n"))
    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Skipping invalid course ID: abc" in out
    assert "Course ID 404 not found." in out
    assert _active_ids(database) == [course_id]


def test_keep_cancelled_deletes_nothing(temp_db, database, capsys):
    ids = _seed(database, "One", "Two", "Three")
    exit_code = delete_courses.main(["--keep", "9", "--db", temp_db], stdin=io.StringIO("no\n"))
    out = capsys.readouterr().out
    assert exit_code == 0
    assert "WARNING: This will delete ALL courses EXCEPT course ID 9" in out
    assert "Cancelled." in out
    assert "Total: 3 courses" in out
    assert _active_ids(database) == ids


def test_keep_confirmed_deletes_others(temp_db, database, capsys):
    keep, other, another = _seed(database, "Keep", "Drop", "Drop too")
    exit_code = delete_courses.main(["--keep", str(keep), "--db", temp_db], stdin=io.StringIO("yes\n"))
    assert exit_code == 0
    assert "Total: 1 courses" in capsys.readouterr().out
    assert _active_ids(database) == [keep]


def test_soft_delete_keeps_row(temp_db, database, capsys):
    (course_id,) = _seed(database, "Soft")
    delete_courses.main([str(course_id), "--soft", "--db", temp_db], stdin=io.StringIO("yes\n"))
    row = database.query_one("SELECT is_active FROM courses WHERE course_id = ?", (course_id,))
    assert row == {"is_active": 0}


def test_no_arguments_prints_help(temp_db, capsys):
    exit_code = delete_courses.main(["--db", temp_db])
    out = capsys.readouterr().out
    assert exit_code == 0
    assert "usage:" in out
    assert "Total: 0 courses" in out


def test_keep_with_invalid_id_deletes_nothing(temp_db, database, capsys):
    ids = _seed(database, "One", "Two")
    stdin = io.StringIO("yes\n")
    exit_code = delete_courses.main(["--keep", "abc", "--db", temp_db], stdin=stdin)
    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Invalid course ID to keep: abc" in out
    assert "WARNING" not in out
    assert stdin.read() == "yes\n"
    assert _active_ids(database) == ids
