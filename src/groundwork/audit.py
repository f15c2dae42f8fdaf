"""Run audit export: one portable zip per answered query.

Archive members:
  run.json        the Run row
  artifacts.json  every stage artifact in write order
  feedback.json   feedback rows, newest first
  evidence.json   full text and metadata of the retrieved chunks
"""

from __future__ import annotations

import json
import zipfile
from dataclasses import asdict
from pathlib import Path

from groundwork.db.repository import Repository
from groundwork.errors import UnknownRun


def export_run(repo: Repository, run_id: str, dest: Path) -> Path:
    """Write the audit bundle for *run_id* and return the archive path.

    *dest* may be a directory (the archive is named ``run_<id>.zip``) or a
    file path.

    Raises:
        UnknownRun: If *run_id* does not exist.
    """
    run = repo.get_run(run_id)
    if run is None:
        raise UnknownRun(run_id)

    artifacts = repo.list_artifacts(run_id)
    feedback = [asdict(f) for f in repo.list_feedback(run_id)]

    evidence_ids: list[str] = []
    for artifact in artifacts:
        if artifact["stage"].startswith("retrieve:") and isinstance(artifact["payload"], list):
            for item in artifact["payload"]:
                cid = item.get("id") if isinstance(item, dict) else None
                if cid and cid not in evidence_ids:
                    evidence_ids.append(cid)
    chunks = repo.get_chunks(evidence_ids)
    evidence = []
    for cid in evidence_ids:
        if cid in chunks:
            data = asdict(chunks[cid])
            data.pop("embedding", None)
            evidence.append(data)

    dest = Path(dest)
    archive = dest / f"run_{run_id}.zip" if dest.is_dir() else dest
    archive.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("run.json", _dumps(asdict(run)))
        zf.writestr("artifacts.json", _dumps(artifacts))
        zf.writestr("feedback.json", _dumps(feedback))
        zf.writestr("evidence.json", _dumps(evidence))
    return archive


def _dumps(data: object) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)
