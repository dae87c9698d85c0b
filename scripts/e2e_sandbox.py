#!/usr/bin/env python3
"""
Discovery Bridge E2E sandbox runner (opt-in, safe-by-default).

What it does (high level):
- Creates a temporary GitLab project in a namespace you control
- Runs a dry run, then a real JPD -> GitLab sync from an existing JPD project
- Asserts every mirrored issue carries sync metadata and a second run writes nothing
- Cleans up (deletes the temporary project) unless KEEP is enabled

The JPD project is only read: the run uses direction "jpd-to-gitlab" with
comment mirroring off, so nothing is written back to JPD.

Required env vars (minimum):
- DISCOVERY_BRIDGE_E2E=1                  # explicit opt-in guard
- E2E_GITLAB_TOKEN=...                    # PAT with `api` scope
- E2E_NAMESPACE_ID=123  OR  E2E_NAMESPACE_PATH=group/subgroup
- E2E_JPD_BASE_URL=https://acme.atlassian.net
- E2E_JPD_EMAIL=... E2E_JPD_API_TOKEN=... E2E_JPD_PROJECT_KEY=MTT

Optional env vars:
- E2E_GITLAB_URL=https://gitlab.com       # defaults to https://gitlab.com
- E2E_JQL="project = MTT AND ..."         # narrow the ideas being mirrored
- E2E_MAX_RESULTS=20                      # cap the number of ideas (default 20)
- E2E_PREFIX=discovery-bridge-e2e         # project name prefix
- E2E_KEEP=1                              # keep the GitLab project for inspection

Run:
  DISCOVERY_BRIDGE_E2E=1 E2E_GITLAB_TOKEN=... E2E_NAMESPACE_PATH=yourgroup \
  E2E_JPD_BASE_URL=... E2E_JPD_EMAIL=... E2E_JPD_API_TOKEN=... E2E_JPD_PROJECT_KEY=MTT \
    python3 scripts/e2e_sandbox.py
"""

from __future__ import annotations

import os
import sys
import uuid
from dataclasses import dataclass
from typing import NoReturn, Optional

import gitlab

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from discovery_bridge.services.gitlab_client import GitLabClient  # noqa: E402
from discovery_bridge.services.jpd_client import JpdClient  # noqa: E402
from discovery_bridge.services.metadata import read_metadata  # noqa: E402
from discovery_bridge.services.sync_service import SyncService  # noqa: E402
from discovery_bridge.sync_config import parse_sync_config  # noqa: E402


def _die(msg: str) -> NoReturn:
    print(f"[e2e] ERROR: {msg}", file=sys.stderr)
    raise SystemExit(2)


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    v = str(v).strip()
    return v if v != "" else default


def _truthy(name: str, default: bool = False) -> bool:
    v = _env(name)
    if v is None:
        return default
    return v.lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class _Config:
    prefix: str
    run_id: str
    keep: bool
    gitlab_url: str
    gitlab_token: str
    namespace_id: Optional[int]
    namespace_path: Optional[str]
    jpd_base_url: str
    jpd_email: str
    jpd_api_token: str
    jpd_project_key: str
    jql: str
    max_results: int


def _parse_int(v: Optional[str]) -> Optional[int]:
    if v is None:
        return None
    try:
        return int(v)
    except ValueError:
        return None


def _resolve_namespace_id(gl: gitlab.Gitlab, *, ns_id: Optional[int], ns_path: Optional[str]) -> Optional[int]:
    if ns_id is not None:
        return int(ns_id)
    if not ns_path:
        return None
    try:
        return int(gl.groups.get(ns_path).id)
    except gitlab.exceptions.GitlabGetError:
        _die("Unable to resolve namespace id. Provide E2E_NAMESPACE_ID or a valid E2E_NAMESPACE_PATH.")


def _delete_project(project: object) -> None:
    try:
        project.delete()  # type: ignore[attr-defined]
    except gitlab.exceptions.GitlabError as e:
        print(f"[e2e] WARN: failed to delete project: {e}", file=sys.stderr)


def _load_config() -> _Config:
    if not _truthy("DISCOVERY_BRIDGE_E2E"):
        _die("Refusing to run: set DISCOVERY_BRIDGE_E2E=1 to opt in.")

    required = {
        name: _env(name)
        for name in ("E2E_GITLAB_TOKEN", "E2E_JPD_BASE_URL", "E2E_JPD_EMAIL", "E2E_JPD_API_TOKEN", "E2E_JPD_PROJECT_KEY")
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        _die(f"Missing {', '.join(missing)}")

    ns_id = _parse_int(_env("E2E_NAMESPACE_ID"))
    ns_path = _env("E2E_NAMESPACE_PATH")
    if ns_id is None and not ns_path:
        _die("Missing namespace: set E2E_NAMESPACE_ID or E2E_NAMESPACE_PATH.")

    return _Config(
        prefix=_env("E2E_PREFIX", "discovery-bridge-e2e") or "discovery-bridge-e2e",
        run_id=uuid.uuid4().hex[:10],
        keep=_truthy("E2E_KEEP"),
        gitlab_url=(_env("E2E_GITLAB_URL", "https://gitlab.com") or "https://gitlab.com").rstrip("/"),
        gitlab_token=required["E2E_GITLAB_TOKEN"],
        namespace_id=ns_id,
        namespace_path=ns_path,
        jpd_base_url=required["E2E_JPD_BASE_URL"].rstrip("/"),
        jpd_email=required["E2E_JPD_EMAIL"],
        jpd_api_token=required["E2E_JPD_API_TOKEN"],
        jpd_project_key=required["E2E_JPD_PROJECT_KEY"],
        jql=_env("E2E_JQL", "") or "",
        max_results=_parse_int(_env("E2E_MAX_RESULTS")) or 20,
    )


def main() -> int:
    cfg = _load_config()
    print(f"[e2e] run_id={cfg.run_id}")

    gl = gitlab.Gitlab(cfg.gitlab_url, private_token=cfg.gitlab_token)
    gl.auth()
    namespace_id = _resolve_namespace_id(gl, ns_id=cfg.namespace_id, ns_path=cfg.namespace_path)

    project = None
    try:
        name = f"{cfg.prefix}-{cfg.run_id}"
        payload = {
            "name": name,
            "path": name,
            "description": f"Discovery Bridge automated E2E sandbox ({cfg.run_id}). Safe to delete.",
            "visibility": "private",
            "initialize_with_readme": False,
        }
        if namespace_id is not None:
            payload["namespace_id"] = namespace_id
        print("[e2e] creating GitLab project…")
        project = gl.projects.create(payload)

        config = parse_sync_config(
            {
                "sync": {
                    "direction": "jpd-to-gitlab",
                    "jql": cfg.jql,
                    "comments": False,
                    "max_results": cfg.max_results,
                },
                "statuses": {"Done": {"destination_state": "closed"}},
            }
        )
        with JpdClient(cfg.jpd_base_url, cfg.jpd_email, cfg.jpd_api_token) as jpd:
            destination = GitLabClient(cfg.gitlab_url, cfg.gitlab_token, str(project.id))
            service = SyncService(
                jpd,
                destination,
                config,
                project_key=cfg.jpd_project_key,
                source_base_url=cfg.jpd_base_url,
                destination_base_url=cfg.gitlab_url,
            )

            print("[e2e] dry run…")
            preview = service.run(dry_run=True)
            if preview.status != "success":
                _die(f"dry run failed:\n{preview.format_text()}")
            if project.issues.list(get_all=True, state="all"):
                _die("dry run wrote issues")

            print("[e2e] first sync…")
            first = service.run()
            if first.status != "success":
                _die(f"first sync failed:\n{first.format_text()}")
            issues = project.issues.list(get_all=True, state="all")
            if len(issues) != len(first.created):
                _die(f"expected {len(first.created)} issues, found {len(issues)}")
            if len(first.created) != len(preview.created):
                _die(f"dry run predicted {len(preview.created)} creates, sync made {len(first.created)}")
            for issue in issues:
                if read_metadata(issue.description) is None:
                    _die(f"issue #{issue.iid} has no sync metadata")

            print("[e2e] idempotency sync…")
            second = service.run()
            if second.status != "success" or second.write_count:
                _die(f"second sync was not a no-op:\n{second.format_text()}")

        print(f"[e2e] OK ({len(first.created)} ideas mirrored)")
        return 0
    finally:
        if cfg.keep:
            print("[e2e] keeping sandbox project (E2E_KEEP=1)")
        elif project is not None:
            print("[e2e] cleaning up…")
            _delete_project(project)


if __name__ == "__main__":
    raise SystemExit(main())
