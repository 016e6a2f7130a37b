"""
Reference-data import — reads bucket JSON files, validates, upserts to DB.
Idempotent: same input = same hash = skips re-insert.

Only display data lives here (names, active flags). Bookings are never
imported this way.
"""
import hashlib
import json
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy.orm import Session

from lessonbook.config import settings
from lessonbook.ingestion.schemas import InstructorSchema, StudentSchema, VehicleSchema
from lessonbook.models import IngestionRun, Instructor, Student, Vehicle

logger = logging.getLogger(__name__)

# filename → (ORM model, validating schema)
SOURCES = {
    "students.json":    (Student, StudentSchema),
    "instructors.json": (Instructor, InstructorSchema),
    "vehicles.json":    (Vehicle, VehicleSchema),
}


# ── Helpers ───────────────────────────────────────────────────────────────────

def _hash_file(path: Path) -> str:
    return hashlib.md5(path.read_bytes()).hexdigest()


def _bucket_hash(bucket_dir: Path) -> str:
    """Single hash of all source files combined."""
    combined = "".join(
        _hash_file(bucket_dir / name) for name in sorted(SOURCES)
        if (bucket_dir / name).is_file()
    )
    return hashlib.md5(combined.encode()).hexdigest()


def _upsert(db: Session, bucket_dir: Path, filename: str) -> dict:
    model, schema = SOURCES[filename]
    path = bucket_dir / filename
    if not path.is_file():
        logger.warning("Ingestion: %s missing, skipped", path)
        return {"upserted": [], "unchanged": [], "skipped": True}

    records = [schema(**r) for r in json.loads(path.read_text())]  # validates
    diff = {"upserted": [], "unchanged": []}

    for r in records:
        existing = db.get(model, r.id)
        data = r.model_dump()

        if existing:
            changed = {k: v for k, v in data.items() if getattr(existing, k) != v}
            if changed:
                for k, v in changed.items():
                    setattr(existing, k, v)
                diff["upserted"].append(r.id)
            else:
                diff["unchanged"].append(r.id)
        else:
            db.add(model(**data))
            diff["upserted"].append(r.id)

    return diff


# ── Main entry point ──────────────────────────────────────────────────────────

def run_ingestion(db: Session, force: bool = False,
                  bucket_dir: Optional[Path] = None) -> dict:
    """
    Run full ingestion. Skips if bucket hash unchanged (idempotent).
    Set force=True to re-ingest regardless.
    """
    bucket_dir = Path(bucket_dir or settings.DATA_DIR)
    bucket_hash = _bucket_hash(bucket_dir)

    if not force:
        last_run = (
            db.query(IngestionRun)
            .filter(IngestionRun.status == "success")
            .order_by(IngestionRun.id.desc())
            .first()
        )
        if last_run and last_run.source_hash == bucket_hash:
            return {
                "status": "skipped",
                "reason": "bucket unchanged",
                "hash": bucket_hash,
            }

    diff_summary = {}
    try:
        for filename in SOURCES:
            diff_summary[filename.removesuffix(".json")] = _upsert(db, bucket_dir, filename)

        db.add(IngestionRun(
            source_hash=bucket_hash,
            status="success",
            diff_summary=diff_summary,
        ))
        db.commit()

    except Exception as e:
        db.rollback()
        db.add(IngestionRun(
            source_hash=bucket_hash,
            status="failed",
            diff_summary={"error": str(e)},
        ))
        db.commit()
        logger.error("Ingestion failed: %s", e)
        raise

    logger.info("Ingestion done: %s", {
        k: len(v["upserted"]) for k, v in diff_summary.items()
    })
    return {"status": "success", "hash": bucket_hash, "diff": diff_summary}
