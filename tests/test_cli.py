from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from openpyxl import load_workbook

ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "candidate_checker.cli"]
FIXED_GENERATED_AT = "2026-03-01T01:02:03Z"

CENSUS_CSV = (
    "Nombre,Apellidos,DNI,Fecha Alta\n"
    "Juan,Pérez,11111111H,15/03/2024\n"
    "Ana,Ruiz,22222222J,05/06/23\n"
    "Luis,Gil,33333333P,\n"
)


def run_cli(state: Path, *args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env["CANDIDATE_CHECKER_GENERATED_AT"] = FIXED_GENERATED_AT
    merged_env["PYTHONIOENCODING"] = "utf-8"
    merged_env.pop("CANDIDATE_CHECKER_UNIONS", None)
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, "--state", str(state), *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        encoding="utf-8",
        env=merged_env,
    )


class CandidateCheckerCliTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)
        self.state = self.tmpdir / "session.json"
        self.census = self.tmpdir / "censo.csv"
        self.census.write_text(CENSUS_CSV, encoding="utf-8")

    def tearDown(self):
        self._tmp.cleanup()

    def load(self) -> None:
        proc = run_cli(self.state, "load", str(self.census), "-q")
        self.assertEqual(proc.returncode, 0, proc.stderr)

    def test_load_json_summary_and_saved_session(self):
        proc = run_cli(self.state, "load", str(self.census), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        summary = json.loads(proc.stdout)
        self.assertEqual(summary["contract"]["name"], "candidate_checker.import_summary")
        self.assertEqual(summary["generated_at"], FIXED_GENERATED_AT)
        self.assertEqual(summary["row_count"], 3)
        self.assertEqual(summary["date_columns"], ["Fecha Alta"])

        saved = json.loads(self.state.read_text(encoding="utf-8"))
        self.assertEqual(saved["fileName"], "censo.csv")
        self.assertEqual(saved["settings"]["unions"], ["CCOO", "UGT"])
        self.assertEqual(saved["data"][0]["Fecha Alta"], "15-03-2024")
        self.assertEqual(saved["data"][1]["Fecha Alta"], "05-06-2023")
        self.assertEqual(saved["checkedState"], {})

    def test_unions_env_sets_the_initial_union_list(self):
        proc = run_cli(self.state, "load", str(self.census), "-q", env={"CANDIDATE_CHECKER_UNIONS": "SB, CGT,SB"})
        self.assertEqual(proc.returncode, 0, proc.stderr)
        saved = json.loads(self.state.read_text(encoding="utf-8"))
        self.assertEqual(saved["settings"]["unions"], ["SB", "CGT"])

    def test_unsupported_extension_returns_exit_2(self):
        other = self.tmpdir / "censo.txt"
        other.write_text("Nombre\nJuan\n", encoding="utf-8")
        proc = run_cli(self.state, "load", str(other))
        self.assertEqual(proc.returncode, 2)
        self.assertIn("Tipo de archivo no soportado: .txt", proc.stderr)
        self.assertFalse(self.state.exists())

    def test_csv_row_with_missing_fields_returns_exit_2(self):
        short = self.tmpdir / "corto.csv"
        short.write_text("Nombre,Apellidos,DNI\nAna,Ruiz\n", encoding="utf-8")
        proc = run_cli(self.state, "load", str(short))
        self.assertEqual(proc.returncode, 2)
        self.assertIn("Error al parsear CSV", proc.stderr)
        self.assertFalse(self.state.exists())

    def test_commands_need_a_loaded_session(self):
        proc = run_cli(self.state, "search", "juan")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("No data loaded", proc.stderr)

    def test_search_ignores_accents_and_case(self):
        self.load()
        proc = run_cli(self.state, "search", "PEREZ", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["match_count"], 1)
        self.assertEqual(payload["rows"][0]["row"], 0)
        self.assertEqual(payload["rows"][0]["identity"], "Pérez Juan")

        proc = run_cli(self.state, "search")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(len(proc.stdout.splitlines()), 3)

    def test_mark_and_duplicates_report(self):
        self.load()
        for args in (("mark", "0", "CCOO"), ("mark", "0", "UGT"), ("mark", "1", "UGT")):
            proc = run_cli(self.state, *args)
            self.assertEqual(proc.returncode, 0, proc.stderr)

        proc = run_cli(self.state, "duplicates", "--json")
        self.assertEqual(proc.returncode, 3, proc.stderr)
        report = json.loads(proc.stdout)
        self.assertEqual(
            report["duplicates"],
            {
                "CCOO": [{"identifier": "Pérez Juan", "otherUnions": ["UGT"]}],
                "UGT": [{"identifier": "Pérez Juan", "otherUnions": ["CCOO"]}],
            },
        )

        proc = run_cli(self.state, "mark", "0", "UGT", "--off")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        proc = run_cli(self.state, "duplicates")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("No se han encontrado candidatos", proc.stdout)

    def test_mark_rejects_unknown_union_and_row(self):
        self.load()
        proc = run_cli(self.state, "mark", "0", "SB")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown union 'SB'", proc.stderr)

        proc = run_cli(self.state, "mark", "7", "CCOO")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("out of range", proc.stderr)

    def test_unions_dates_and_report_file(self):
        self.load()
        proc = run_cli(self.state, "unions", "--add", "SB", "--remove", "UGT")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(proc.stdout.splitlines(), ["CCOO", "SB"])

        proc = run_cli(self.state, "dates", "--submission", "2024-03-01", "--voting", "2024-03-15")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        proc = run_cli(self.state, "dates", "--voting", "15/03/2024")
        self.assertEqual(proc.returncode, 1)

        for args in (("mark", "2", "CCOO"), ("mark", "2", "SB")):
            self.assertEqual(run_cli(self.state, *args).returncode, 0)

        report_path = self.tmpdir / "report.json"
        proc = run_cli(self.state, "report", "-o", str(report_path))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        report = json.loads(report_path.read_text(encoding="utf-8"))
        self.assertEqual(report["file_name"], "censo.csv")
        self.assertEqual(
            report["key_dates"],
            {"submission_date": "01/03/2024", "voting_date": "15/03/2024"},
        )
        self.assertEqual(report["duplicates"]["SB"], [{"identifier": "Gil Luis", "otherUnions": ["CCOO"]}])

    def test_reload_keeps_unions_and_dates_but_drops_marks(self):
        self.load()
        run_cli(self.state, "unions", "--add", "SITCA")
        run_cli(self.state, "dates", "--voting", "2024-03-15")
        run_cli(self.state, "mark", "0", "SITCA")
        self.load()
        saved = json.loads(self.state.read_text(encoding="utf-8"))
        self.assertEqual(saved["settings"]["unions"], ["CCOO", "UGT", "SITCA"])
        self.assertEqual(saved["settings"]["dates"]["votingDate"], "2024-03-15")
        self.assertEqual(saved["checkedState"], {})

    def test_export_xlsx(self):
        self.load()
        run_cli(self.state, "mark", "1", "UGT")
        output = self.tmpdir / "verificado.xlsx"
        proc = run_cli(self.state, "export", "--format", "xlsx", "-o", str(output))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        sheet = load_workbook(output)["Datos Verificados"]
        rows = list(sheet.iter_rows(values_only=True))
        self.assertEqual(list(rows[0]), ["Nombre", "Apellidos", "DNI", "Fecha Alta", "CCOO", "UGT"])
        self.assertEqual(rows[2][-2:], ("FALSO", "VERDADERO"))

    def test_clear_and_version(self):
        self.load()
        proc = run_cli(self.state, "clear")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertFalse(self.state.exists())

        proc = run_cli(self.state, "version")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(proc.stdout.strip(), "0.3.0")


if __name__ == "__main__":
    unittest.main()
