import pandas as pd
import pytest

import grade_sheets


@pytest.fixture
def batch_dirs(tmp_path, sheet_png, ground_truth):
    input_dir = tmp_path / "omr_input"
    input_dir.mkdir()
    (input_dir / "sheet01.png").write_bytes(sheet_png)
    (input_dir / "notes.txt").write_text("not a sheet")

    key_path = tmp_path / "answer_key.csv"
    rows = "".join(f"{i},{answer}\n" for i, answer in enumerate(ground_truth, start=1))
    key_path.write_text("question,answer\n" + rows)
    return input_dir, key_path, tmp_path / "out"


def test_batch_run_grades_and_reports(batch_dirs, capsys):
    input_dir, key_path, out_dir = batch_dirs
    exit_code = grade_sheets.main([
        "--input-dir", str(input_dir),
        "--answer-key", str(key_path),
        "--output-dir", str(out_dir),
    ])
    assert exit_code == 0
    assert "Score: 20/20 (100.00%)" in capsys.readouterr().out

    results = pd.read_csv(out_dir / "csv_data" / "student_results" / "S1_sheet01.csv",
                          dtype=str, keep_default_na=False)
    assert results.loc[results["question_number"] == "Total", "marks"].item() == "20"
    assert (out_dir / "graded_output" / "S1_sheet01_graded.png").exists()

    summary = (out_dir / "csv_data" / "student_answers.csv").read_text()
    assert "S1_sheet01,S1,T9,20,20,100.0" in summary


def test_contour_mode_gives_same_score(batch_dirs, capsys):
    input_dir, key_path, out_dir = batch_dirs
    assert grade_sheets.main([
        "--input-dir", str(input_dir), "--answer-key", str(key_path),
        "--output-dir", str(out_dir), "--contours", "--morphology",
    ]) == 0
    assert "Score: 20/20 (100.00%)" in capsys.readouterr().out


def test_unreadable_image_is_skipped(batch_dirs, capsys):
    input_dir, key_path, out_dir = batch_dirs
    (input_dir / "broken.jpg").write_bytes(b"not really a jpeg")
    assert grade_sheets.main([
        "--input-dir", str(input_dir), "--answer-key", str(key_path), "--output-dir", str(out_dir),
    ]) == 0
    captured = capsys.readouterr()
    assert "Could not process broken.jpg" in captured.err
    assert "Score: 20/20" in captured.out


def test_missing_answer_key_is_fatal(tmp_path, capsys):
    exit_code = grade_sheets.main([
        "--input-dir", str(tmp_path), "--answer-key", str(tmp_path / "missing.csv"),
        "--output-dir", str(tmp_path / "out"),
    ])
    assert exit_code == 1
    assert "FATAL ERROR" in capsys.readouterr().err


def test_invalid_sheet_options_are_fatal(batch_dirs, capsys):
    input_dir, key_path, out_dir = batch_dirs
    exit_code = grade_sheets.main([
        "--input-dir", str(input_dir), "--answer-key", str(key_path),
        "--output-dir", str(out_dir), "--threshold", "2.0",
    ])
    assert exit_code == 1


def test_empty_input_directory(tmp_path, batch_dirs, capsys):
    _, key_path, out_dir = batch_dirs
    empty = tmp_path / "empty"
    empty.mkdir()
    assert grade_sheets.main([
        "--input-dir", str(empty), "--answer-key", str(key_path), "--output-dir", str(out_dir),
    ]) == 0
    assert "No images found" in capsys.readouterr().out


def test_report_write_failure_skips_only_that_sheet(batch_dirs, sheet_png, capsys, monkeypatch):
    input_dir, key_path, out_dir = batch_dirs
    (input_dir / "sheet02.png").write_bytes(sheet_png)
    save_results_csv = grade_sheets.reporting.save_results_csv

    def failing_for_first_sheet(summary, output_path, student_info=None):
        if "sheet01" in str(output_path):
            raise PermissionError(f"read-only: {output_path}")
        return save_results_csv(summary, output_path, student_info)

    monkeypatch.setattr(grade_sheets.reporting, "save_results_csv", failing_for_first_sheet)
    assert grade_sheets.main([
        "--input-dir", str(input_dir), "--answer-key", str(key_path), "--output-dir", str(out_dir),
    ]) == 0

    captured = capsys.readouterr()
    assert "Could not process sheet01.png" in captured.err
    assert (out_dir / "csv_data" / "student_results" / "S1_sheet02.csv").exists()
    assert not (out_dir / "csv_data" / "student_results" / "S1_sheet01.csv").exists()


def test_process_single_sheet_reports_unwritable_output(tmp_path, sheet_png, ground_truth, small_config, capsys):
    image_path = tmp_path / "sheet01.png"
    image_path.write_bytes(sheet_png)
    processor = grade_sheets.OMRProcessor(small_config)
    missing = tmp_path / "does" / "not" / "exist"

    summary = grade_sheets.process_single_sheet(
        processor, str(image_path), ground_truth, str(missing), str(missing))
    assert summary is None
    assert "Could not process sheet01.png" in capsys.readouterr().err
