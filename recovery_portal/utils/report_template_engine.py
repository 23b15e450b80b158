"""
Report Template Engine
Renders the printable HTML versions of reports and case statements
"""

import os
import logging
from typing import Dict, Any, Optional
from datetime import date, datetime
from decimal import Decimal
from jinja2 import Environment, FileSystemLoader, TemplateError

logger = logging.getLogger(__name__)


def format_currency(value: Any) -> str:
    """£1,234.56, with negatives as -£1,234.56"""
    if value is None or value == "":
        value = 0
    amount = Decimal(str(value)).quantize(Decimal("0.01"))
    sign = "-" if amount < 0 else ""
    return f"{sign}£{abs(amount):,.2f}"


def format_date(value: Any) -> str:
    """DD/MM/YYYY, empty for missing dates"""
    if not value:
        return ""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")
    return str(value)


def format_percent(value: Any) -> str:
    return f"{round(float(value or 0))}%"


class ReportTemplateEngine:
    """
    Report template engine using Jinja2 for self-contained printable HTML
    """

    def __init__(self, templates_dir: Optional[str] = None):
        current_dir = os.path.dirname(os.path.abspath(__file__))
        self.templates_dir = templates_dir or os.path.join(current_dir, 'report_templates')

        self.env = Environment(
            loader=FileSystemLoader(self.templates_dir),
            autoescape=True
        )
        self.env.filters['currency'] = format_currency
        self.env.filters['date'] = format_date
        self.env.filters['percent'] = format_percent
        logger.debug(f"Report template engine initialized with templates from: {self.templates_dir}")

    def render_template(self, template_name: str, context: Dict[str, Any]) -> Optional[str]:
        """
        Render a report template with the given context

        Args:
            template_name: Name of the template file (e.g., 'recovery_analysis.html')
            context: Dictionary of variables available to the template

        Returns:
            Rendered HTML string or None if rendering failed
        """
        base_context = {
            'generated_at': datetime.utcnow(),
            'current_year': datetime.utcnow().year,
        }
        base_context.update(context)
        try:
            template = self.env.get_template(template_name)
            return template.render(base_context)
        except TemplateError as e:
            logger.error(f"Failed to render template {template_name}: {str(e)}")
            return None

    def template_exists(self, template_name: str) -> bool:
        return os.path.isfile(os.path.join(self.templates_dir, template_name))


# Global template engine instance
template_engine = ReportTemplateEngine()
