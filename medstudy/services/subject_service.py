from __future__ import annotations

import logging
import random
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from medstudy.core.config import settings
from medstudy.models.subject import Subject


logger = logging.getLogger(__name__)

SUBJECT_PALETTE = ["#3b82f6", "#10b981", "#f59e0b", "#ef4444", "#8b5cf6", "#06b6d4"]
DEFAULT_ICON = "BookOpen"
SUBJECT_NAME_MAX_CHARS = 255

# (name, description, icon, color) of the specialties every installation starts with
DEFAULT_SUBJECTS = [
    ("Cardiologia", "Estudi del cor i sistema cardiovascular", "Heart", "#ef4444"),
    ("Neurologia", "Estudi del sistema nerviós i malalties neurològiques", "Brain", "#8b5cf6"),
    ("Pediatria", "Medicina infantil i atenció a nens", "Baby", "#06b6d4"),
    ("Cirurgia", "Intervencions quirúrgiques i tècniques operatòries", "Scissors", "#f59e0b"),
    ("Medicina Interna", "Diagnòstic i tractament de malalties d'òrgans interns", "Stethoscope", "#10b981"),
    ("Dermatologia", "Malalties de la pell i tractaments dermatològics", "Eye", "#ec4899"),
]


def clean_subject_name(label: Optional[str]) -> str:
    name = " ".join(str(label or "").split())[:SUBJECT_NAME_MAX_CHARS].rstrip()
    return name or settings.AI_FALLBACK_SUBJECT


def subject_key(label: Optional[str]) -> str:
    """Dedup key: whitespace-collapsed, case-folded name."""
    return clean_subject_name(label).casefold()[:SUBJECT_NAME_MAX_CHARS]


def get_subject_by_name(db: Session, label: Optional[str]) -> Optional[Subject]:
    return db.query(Subject).filter(Subject.name_key == subject_key(label)).first()


def resolve_subject(db: Session, label: Optional[str], *, rng: Optional[random.Random] = None) -> Subject:
    """Return the subject named ``label`` (case-insensitive), creating it if needed.

    Two concurrent resolutions of a new name race on the unique ``name_key``
    index; the loser rolls back and reads the winner's row.
    """
    name = clean_subject_name(label)
    existing = get_subject_by_name(db, name)
    if existing:
        return existing

    subject = Subject(
        name=name,
        name_key=subject_key(name),
        description=f"Materials relacionats amb {name}",
        icon=DEFAULT_ICON,
        color=(rng or random).choice(SUBJECT_PALETTE),
    )
    db.add(subject)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        winner = get_subject_by_name(db, name)
        if winner is None:
            raise
        logger.info("Subject %r was created concurrently; reusing id=%s", name, winner.id)
        return winner

    db.refresh(subject)
    logger.info("Created subject %r (id=%s)", name, subject.id)
    return subject


def seed_subjects(db: Session) -> int:
    """Insert the default specialties that are missing (safe to run repeatedly)."""
    created = 0
    for name, description, icon, color in DEFAULT_SUBJECTS:
        if get_subject_by_name(db, name):
            continue
        db.add(
            Subject(
                name=name,
                name_key=subject_key(name),
                description=description,
                icon=icon,
                color=color,
            )
        )
        created += 1
    if created:
        db.commit()
    return created


def list_subjects(db: Session) -> List[Subject]:
    return db.query(Subject).order_by(Subject.name.asc()).all()


def subject_to_dict(s: Subject) -> dict:
    return {
        "id": int(s.id),
        "name": s.name,
        "description": s.description,
        "icon": s.icon,
        "color": s.color,
    }
