"""Default lead mapping and header-based rule suggestions.

The alias lists cover the column headings produced by the spreadsheet
exports and the CRM's native field codes.
"""

import unicodedata
from collections.abc import Iterable

from leadsync.lib.mapping.rules import PRIORITY_LABELS, MappingRule, Transform

DEFAULT_MAPPING_NAME = "default-leads"

# target field -> (transform, aliases in preference order)
LEAD_FIELD_ALIASES: dict[str, tuple[Transform, tuple[str, ...]]] = {
    "id": (Transform.IDENTITY, ("ID", "Bitrix ID", "Lead ID")),
    "nome": (Transform.IDENTITY, ("Nome", "Nome Completo", "NAME", "TITLE")),
    "telefone": (Transform.IDENTITY, ("Telefone", "Celular", "PHONE")),
    "email": (Transform.IDENTITY, ("Email", "E-mail", "EMAIL")),
    "idade": (Transform.NUMERIC, ("Idade", "Age", "UF_IDADE")),
    "projeto": (Transform.IDENTITY, ("Projetos Comerciais", "Projeto", "PROJETO")),
    "scouter": (Transform.IDENTITY, ("Gestão do Scouter", "Scouter", "SCOUTER_NAME")),
    "supervisor": (Transform.IDENTITY, ("Supervisor", "Supervisor do Scouter", "SUPERVISOR")),
    "localizacao": (Transform.IDENTITY, ("Localização", "Localizacao", "ADDRESS")),
    "latitude": (Transform.NUMERIC, ("Latitude", "LAT", "lat")),
    "longitude": (Transform.NUMERIC, ("Longitude", "LNG", "lng")),
    "local_da_abordagem": (Transform.IDENTITY, ("Local da Abordagem", "Local Abordagem")),
    "etapa": (Transform.IDENTITY, ("Etapa", "Etapa do Lead", "STATUS_ID")),
    "valor_ficha": (Transform.NUMERIC, ("Valor Ficha", "Valor por Fichas", "OPPORTUNITY")),
    "ficha_confirmada": (Transform.BOOLEAN, ("Ficha Confirmada", "Confirmado")),
    "criado": (Transform.DATE, ("Data de Criação", "Criado", "DATE_CREATE")),
    "updated_at": (Transform.TIMESTAMP, ("Data de Modificação", "Modificado", "DATE_MODIFY")),
}

DEFAULT_LEAD_RULES: list[MappingRule] = [
    MappingRule(target, aliases[: len(PRIORITY_LABELS)], transform)
    for target, (transform, aliases) in LEAD_FIELD_ALIASES.items()
]


def _fold(name: str) -> str:
    """Lower-case and strip accents/whitespace for loose header matching."""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().replace("_", " ").split())


def suggest_rules(headers: Iterable[str]) -> list[MappingRule]:
    """Suggest mapping rules for a set of source headers.

    Each known target field whose aliases match one or more headers gets a
    rule whose candidates are the matching headers (spelled as they appear
    in the source) in alias preference order, capped at three.  A header
    equal to the target field name itself also matches.

    Args:
        headers: Source column headings.

    Returns:
        Suggested rules, one per matched target field.
    """
    by_folded: dict[str, str] = {}
    for header in headers:
        by_folded.setdefault(_fold(header), header)

    suggestions: list[MappingRule] = []
    for target, (transform, aliases) in LEAD_FIELD_ALIASES.items():
        matched: list[str] = []
        for alias in (*aliases, target):
            header = by_folded.get(_fold(alias))
            if header is not None and header not in matched:
                matched.append(header)
        if matched:
            suggestions.append(MappingRule(target, tuple(matched[: len(PRIORITY_LABELS)]), transform))
    return suggestions
