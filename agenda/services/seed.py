# agenda/services/seed.py
import logging
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import models

logger = logging.getLogger(__name__)

# Catálogo inicial (precio en yenes)
DEFAULT_SERVICES = [
    ("general", "一般整骨治療", "General Treatment", "30分", 3000, "肩こり、腰痛、関節痛の基本治療"),
    ("sports", "スポーツ整骨", "Sports Therapy", "45分", 4500, "スポーツ外傷・障害の専門治療"),
    ("massage", "マッサージ治療", "Therapeutic Massage", "60分", 5000, "筋肉の緊張緩和とリラクゼーション"),
    ("acupuncture", "鍼灸治療", "Acupuncture", "45分", 4000, "東洋医学による痛みの根本治療"),
]


def seed_services(db: Session) -> int:
    """Inserta el catálogo por defecto si la tabla está vacía. Devuelve cuántos insertó."""
    count = db.scalar(select(func.count(models.Service.id)))
    if count:
        return 0
    db.add_all([
        models.Service(id=sid, name=name, name_en=name_en, duration=duration,
                       price=price, description=desc, active=True)
        for sid, name, name_en, duration, price, desc in DEFAULT_SERVICES
    ])
    db.commit()
    logger.info("Catálogo de servicios sembrado: %s servicios", len(DEFAULT_SERVICES))
    return len(DEFAULT_SERVICES)
