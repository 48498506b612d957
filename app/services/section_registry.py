"""
Static catalog of the evaluable audit sections.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

from app.core.exceptions import NotFoundError
from app.models.enums import SectionCategory

PARQUE_INFORMATICO = "parque_informatico"
GENERAL_SECTION = "general"  # findings not tied to a section


@dataclass(frozen=True)
class SectionDefinition:
    """One evaluable section."""
    id: str
    name: str
    obligatory: bool
    category: SectionCategory
    allowed_formats: Tuple[str, ...]
    max_size_mb: int

    @property
    def weight(self) -> int:
        """Aggregation weight: obligatory sections count double."""
        return 2 if self.obligatory else 1

    def accepts_extension(self, filename: str) -> bool:
        ext = filename.rsplit(".", 1)[-1].upper() if "." in filename else ""
        return ext in self.allowed_formats


_CATALOG: Tuple[SectionDefinition, ...] = (
    SectionDefinition("topologia", "Topología", False, SectionCategory.PRESENCIAL, ("PDF",), 10),
    SectionDefinition(
        "cuarto_tecnologia", "Cuarto de Tecnología", True, SectionCategory.PRESENCIAL,
        ("PDF", "JPG", "PNG", "XLSX"), 25,
    ),
    SectionDefinition("conectividad", "Conectividad", False, SectionCategory.PRESENCIAL, ("PDF",), 5),
    SectionDefinition("energia", "Energía", True, SectionCategory.PRESENCIAL, ("PDF",), 15),
    SectionDefinition("temperatura_ct", "Temperatura CT", False, SectionCategory.PRESENCIAL, ("PDF",), 10),
    SectionDefinition("servidores", "Servidores", False, SectionCategory.PRESENCIAL, ("PDF", "XLSX"), 10),
    SectionDefinition("internet", "Internet", False, SectionCategory.PRESENCIAL, ("PDF", "PNG", "JPG"), 5),
    SectionDefinition(
        "seguridad_informatica", "Seguridad Informática", True, SectionCategory.PRESENCIAL, ("PDF",), 15,
    ),
    SectionDefinition(
        "personal_capacitado", "Personal Capacitado en Sitio", False, SectionCategory.PRESENCIAL,
        ("PDF", "XLSX"), 5,
    ),
    SectionDefinition("escalamiento", "Escalamiento", False, SectionCategory.PRESENCIAL, ("PDF",), 5),
    SectionDefinition(
        "informacion_entorno", "Información de Entorno", False, SectionCategory.PRESENCIAL,
        ("PDF", "LOG", "TXT"), 20,
    ),
    SectionDefinition(PARQUE_INFORMATICO, "Parque Informático", True, SectionCategory.PARQUE, ("XLSX", "XLS"), 50),
)

_BY_ID: Dict[str, SectionDefinition] = {s.id: s for s in _CATALOG}


def get(section_id: str) -> SectionDefinition:
    """
    Look up a section by id.

    Raises:
        NotFoundError: unknown section id
    """
    try:
        return _BY_ID[section_id]
    except KeyError:
        raise NotFoundError("Section", section_id) from None


def list_all() -> List[SectionDefinition]:
    """All sections in catalog order."""
    return list(_CATALOG)


def list_obligatory() -> FrozenSet[str]:
    return frozenset(s.id for s in _CATALOG if s.obligatory)


def is_known(section_id: str) -> bool:
    return section_id in _BY_ID
