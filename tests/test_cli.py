#!/usr/bin/env python3
"""
test_cli.py - Tests for the command line entrypoint.

Tests:
1. Successful conversion prints an ok envelope and exits 0
2. Errors print an error envelope and exit 1
3. --order-only reports the resolved order
"""
from __future__ import annotations

import json

from cp_convert.__main__ import main, make_response


def run_cli(capsys, *argv):
    code = main(list(argv))
    return code, json.loads(capsys.readouterr().out)


class TestEnvelope:
    """Response envelope shape."""

    def test_make_response_omits_empty_fields(self):
        assert make_response("ok") == {"status": "ok"}
        assert make_response("error", error={"code": "X"}, duration_ms=3) == {
            "status": "error",
            "error": {"code": "X"},
            "duration_ms": 3,
        }


class TestMain:
    """End-to-end CLI runs."""

    def test_convert(self, tmp_path, make_package, capsys, clean_env):
        site = make_package("site", dependencies=["my.group:base"])
        base = make_package("base")

        code, response = run_cli(
            capsys,
            "-a", str(tmp_path / "artifacts"),
            "-o", str(tmp_path / "manifests"),
            "-w", str(tmp_path / "work"),
            str(site), str(base),
        )

        assert code == 0
        assert response["status"] == "ok"
        assert [p["id"] for p in response["result"]["packages"]] == [
            "my.group:base:1.0.0",
            "my.group:site:1.0.0",
        ]
        assert all(p["sha256"].startswith("sha256:") for p in response["result"]["packages"])
        assert (tmp_path / "manifests" / "site.json").is_file()
        assert "duration_ms" in response

    def test_order_only(self, tmp_path, make_package, capsys, clean_env):
        site = make_package("site", dependencies=["my.group:base"])
        base = make_package("base")

        code, response = run_cli(
            capsys, "--order-only", "-a", str(tmp_path / "a"), "-o", str(tmp_path / "m"), str(site), str(base)
        )

        assert code == 0
        assert response["result"]["order"] == ["my.group:base:1.0.0", "my.group:site:1.0.0"]
        assert not (tmp_path / "a").exists()

    def test_cycle(self, tmp_path, make_package, capsys, clean_env):
        a = make_package("a", dependencies=["my.group:b"])
        b = make_package("b", dependencies=["my.group:a"])

        code, response = run_cli(capsys, "-a", str(tmp_path / "a"), "-o", str(tmp_path / "m"), str(a), str(b))

        assert code == 1
        assert response["status"] == "error"
        assert response["error"]["code"] == "CYCLIC_DEPENDENCY"

    def test_missing_outputs(self, make_package, capsys, clean_env):
        code, response = run_cli(capsys, str(make_package("site")))
        assert code == 1
        assert response["error"]["code"] == "CONFIG_ERROR"

    def test_config_file_and_filter_flag(self, tmp_path, make_package, capsys, clean_env):
        config_file = tmp_path / "converter.yaml"
        config_file.write_text(
            f"artifacts_dir: {tmp_path / 'artifacts'}\n"
            f"manifests_dir: {tmp_path / 'manifests'}\n"
            "failure_policy: continue\n"
        )
        broken = make_package("broken", entries={"jcr_root/var/x.txt": "x"})
        fine = make_package("fine")

        code, response = run_cli(
            capsys, "-c", str(config_file), "-f", "/jcr_root/var/.*", str(broken), str(fine)
        )

        assert code == 1
        statuses = [p["status"] for p in response["result"]["packages"]]
        assert statuses == ["failed", "converted"]

    def test_invalid_handler_spec(self, tmp_path, make_package, capsys, clean_env):
        code, response = run_cli(
            capsys, "--handler", "no-equals-sign", "-a", str(tmp_path), "-o", str(tmp_path),
            str(make_package("site")),
        )
        assert code == 1
        assert response["error"]["code"] == "INVALID_ARGUMENT"
