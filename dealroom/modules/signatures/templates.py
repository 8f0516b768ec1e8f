"""Plain-text contract templates for generated room documents.

The text is a convenience draft; nothing here is checked for legal validity.
"""

from dataclasses import dataclass
from datetime import date

from jinja2 import BaseLoader, Environment, StrictUndefined

from dealroom.models.enums import DocumentType


@dataclass(frozen=True)
class Party:
    name: str
    email: str


_NDA = """\
# NON-DISCLOSURE AGREEMENT

Effective date: {{ effective_date }}
Subject right: {{ subject }}

Disclosing party: {{ seller | party }}
Receiving party: {{ buyer | party }}

Article 1 (Purpose)
This agreement governs the confidentiality obligations of the parties when
the disclosing party provides information about the subject right to the
receiving party.

Article 2 (Confidential information)
"Confidential information" means technical and business information the
disclosing party provides to the receiving party in connection with this
agreement.

Article 3 (Obligations)
The receiving party shall not disclose confidential information to third
parties nor use it for any purpose other than evaluating the subject right.
"""

_LICENSE = """\
# LICENSE AGREEMENT

Effective date: {{ effective_date }}
Licensed right: {{ subject }}

Licensor: {{ seller | party }}
Licensee: {{ buyer | party }}

Article 1 (Grant)
The licensor grants the licensee the right to use the licensed right on the
terms agreed in the accepted offer of this deal room.

Article 2 (Consideration)
The licensee shall pay {{ price or "the agreed price" }}, settled through the platform escrow.

Article 3 (Terms)
{{ terms or "As stated in the accepted offer." }}
"""


def _filter_party(party: Party) -> str:
    return f"{party.name} ({party.email})"


# Plain text: no autoescaping, keep the final newline of each template
_env = Environment(
    loader=BaseLoader(),
    autoescape=False,
    keep_trailing_newline=True,
    undefined=StrictUndefined,
)
_env.filters["party"] = _filter_party

_TEMPLATES: dict[DocumentType, tuple[str, str]] = {
    DocumentType.NDA: ("NDA", _NDA),
    DocumentType.LICENSE: ("License", _LICENSE),
}


def supports(template_type: DocumentType) -> bool:
    return template_type in _TEMPLATES


def render(
    template_type: DocumentType,
    subject: str,
    seller: Party,
    buyer: Party,
    effective_date: date,
    price: str | None = None,
    terms: str | None = None,
) -> tuple[str, str]:
    """Return ``(title, content)``. Raises KeyError for unsupported types."""
    label, source = _TEMPLATES[template_type]
    content = _env.from_string(source).render(
        effective_date=effective_date.isoformat(),
        subject=subject,
        seller=seller,
        buyer=buyer,
        price=price,
        terms=terms,
    )
    return f"{label} - {subject}", content
