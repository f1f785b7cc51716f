"""
Catalogue des remises éligibles "maintenant" (pas de Stripe, pas de DB).
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from parc_paiements.models.items import DiscountConfig

SENIORS = "seniors"
STUDENTS = "students"
FAMILIES = "families"
DISABILITY = "disability"
EARLY_BIRD = "early_bird"

# Ordre de présentation (aucune priorité de sélection)
DISCOUNT_IDS = (SENIORS, STUDENTS, FAMILIES, DISABILITY, EARLY_BIRD)

_LABELS = {
    SENIORS: ("Adultes seniors (65+)", "Remise pour les personnes de 65 ans et plus"),
    STUDENTS: ("Étudiants", "Remise pour les étudiants avec carte valide"),
    FAMILIES: ("Familles nombreuses", "Remise pour les familles de 3 enfants ou plus"),
    DISABILITY: ("Personnes en situation de handicap", "Remise pour les personnes en situation de handicap"),
}


class DiscountOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    percentage: int
    description: str


def as_utc(moment: datetime) -> datetime:
    # Un horodatage naïf est lu comme UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def early_bird_open(config: DiscountConfig, now: datetime) -> bool:
    deadline: Optional[datetime] = config.early_bird_deadline
    if not (config.early_bird or 0) > 0 or deadline is None:
        return False
    return as_utc(now) <= as_utc(deadline)


# module parc_paiements.remises.catalogue
def eligible_discounts(config: DiscountConfig, now: datetime) -> List[DiscountOption]:
    """
    Remises proposables à l'instant `now` (injecté, jamais lu d'une horloge globale).
    - Une option par pourcentage non nul, dans l'ordre seniors, students, families, disability, early_bird.
    - early_bird exige en plus une date limite et now <= date limite; passé ce délai elle disparaît.
    """
    options: List[DiscountOption] = []
    for discount_id in (SENIORS, STUDENTS, FAMILIES, DISABILITY):
        pct = getattr(config, discount_id) or 0
        if pct > 0:
            label, description = _LABELS[discount_id]
            options.append(DiscountOption(id=discount_id, label=label, percentage=pct, description=description))

    if early_bird_open(config, now):
        deadline = as_utc(config.early_bird_deadline)
        options.append(DiscountOption(
            id=EARLY_BIRD,
            label="Inscription anticipée",
            percentage=config.early_bird,
            description=f"Valable jusqu'au {deadline.strftime('%d/%m/%Y')}",
        ))
    return options
