"""End-to-end CLI runs against fixture-backed search and pages."""

from __future__ import annotations

import json

import pytest

from scanpilot.__main__ import main

FIXTURES = """\
searches:
  https://search.example/python:
    - url: https://www.linkedin.com/jobs/view/101/
      title: Python Engineer
      company: Acme
      location: Remote
    - url: https://www.linkedin.com/jobs/view/102/
      title: Pastry Chef
      company: Bakery
      location: Lyon
    - url: https://www.linkedin.com/jobs/view/103/
      title: Data Engineer
      company: Initech
pages:
  https://www.linkedin.com/jobs/view/101/: "We need a Python engineer for backend services. Remote friendly."
  https://www.linkedin.com/jobs/view/102/: "Croissants and bread every morning."
"""

PLAN = """\
profile: "Python backend engineer who likes remote work"
search_urls:
  - https://search.example/python
"""


@pytest.fixture()
def workspace(tmp_path):
    state = tmp_path / ".state"
    (tmp_path / "fixtures.yaml").write_text(FIXTURES)
    (tmp_path / "plan.yaml").write_text(PLAN)
    settings = tmp_path / "settings.yaml"
    settings.write_text(
        f"""\
mock_mode: true
fixtures_file: "{tmp_path / 'fixtures.yaml'}"
plan_file: "{tmp_path / 'plan.yaml'}"
state_dir: "{state}"
batch_pause_seconds: 0
"""
    )
    return tmp_path, settings, state


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def test_scan_status_failed_reset(workspace):
    _, settings, state = workspace

    assert _run(["--settings", str(settings), "scan"]) == 0
    data = json.loads((state / "job_index.json").read_text())
    jobs = {job["id"]: job for job in data["jobs"]}
    assert set(jobs) == {"101", "102", "103"}
    assert jobs["101"]["scan_status"] == "completed"
    assert jobs["101"]["match_score"] > jobs["102"]["match_score"]
    assert jobs["103"]["scan_error"]["kind"] == "fetch_error"

    assert _run(["--settings", str(settings), "status"]) == 0
    assert _run(["--settings", str(settings), "failed", "--kind", "fetch_error"]) == 0

    # no SMTP configured, so a manual digest reports failure
    assert _run(["--settings", str(settings), "digest"]) == 1

    assert _run(["--settings", str(settings), "reset"]) == 0
    data = json.loads((state / "job_index.json").read_text())
    assert data["jobs"] == []


def test_scan_with_unknown_url_still_completes(workspace):
    _, settings, _ = workspace
    assert _run(["--settings", str(settings), "scan", "--url", "https://search.example/none"]) == 0
