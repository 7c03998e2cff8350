"""
XML templates for authority documents.

Templates are Jinja2 files that render the UBL invoice and the SOAP sendBill
envelope.
"""
from pathlib import Path

# Template directory
TEMPLATE_DIR = Path(__file__).parent

# Available templates
TEMPLATES = {
    "invoice": "invoice.xml.j2",
    "send_bill": "send_bill.xml.j2",
}


def get_template_path(name: str) -> Path:
    """Get path to a template file."""
    if name not in TEMPLATES:
        raise ValueError(f"Unknown template: {name}. Valid: {list(TEMPLATES.keys())}")
    return TEMPLATE_DIR / TEMPLATES[name]


def load_template(name: str) -> str:
    """Load template contents."""
    return get_template_path(name).read_text(encoding="utf-8")
