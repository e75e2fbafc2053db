"""
Quote PDF Service

Lays a frozen Quote out as a letter-size PDF with ReportLab flowables:
- Header with company identity, quote id and date
- Client, model and options sections
- Pricing summary, terms and signature lines

Figures are formatted from the Quote as-is; nothing is recomputed here.
Content that runs past one page flows onto the next page.
"""

import io
import itertools
import logging
import threading
from collections import Counter
from concurrent.futures import CancelledError, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import KeepTogether, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.utils.helpers import format_currency, format_percent
from services.quote_assembler import Quote
from validators import sanitize_filename

logger = logging.getLogger(__name__)

RENDER_OUTCOMES = ('completed', 'failed', 'timed_out', 'cancelled', 'superseded')

BRAND_COLOR = colors.HexColor('#0ea5e9')
TEXT_COLOR = colors.HexColor('#374151')
MUTED_COLOR = colors.HexColor('#6b7280')
PANEL_COLOR = colors.HexColor('#f8fafc')
RULE_COLOR = colors.HexColor('#e5e7eb')

TERMS = [
    "This quote is valid for 30 days from the date of issue",
    "A 25% deposit is required to secure your build slot",
    "Delivery fee is an estimate and may vary based on final destination",
    "Build time is approximately 8-12 weeks from deposit",
    "Financing estimate is for illustration only and subject to lender approval",
    "All prices are subject to change without notice",
]


class RenderError(Exception):
    """PDF generation failed; safe to retry"""
    def __init__(self, message: str, quote_id: Optional[str] = None):
        self.message = message
        self.quote_id = quote_id
        super().__init__(self.message)


class RenderCancelled(Exception):
    """A newer render for the same session replaced this one"""


@dataclass(frozen=True)
class CompanyInfo:
    name: str = 'Firefly Tiny Homes'
    tagline: str = 'Custom Tiny Home Quote'
    address: str = ''
    phone: str = ''
    email: str = ''

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> 'CompanyInfo':
        data = data or {}
        return cls(**{k: str(v) for k, v in data.items() if k in cls.__dataclass_fields__})


def _styles():
    styles = getSampleStyleSheet()
    return {
        'title': ParagraphStyle('QuoteTitle', parent=styles['Heading1'], fontSize=24,
                                textColor=BRAND_COLOR, alignment=1, spaceAfter=4),
        'subtitle': ParagraphStyle('QuoteSubtitle', parent=styles['Normal'], fontSize=12,
                                   textColor=TEXT_COLOR, alignment=1, spaceAfter=4),
        'meta': ParagraphStyle('QuoteMeta', parent=styles['Normal'], fontSize=9,
                               textColor=MUTED_COLOR, alignment=1, spaceAfter=12),
        'section': ParagraphStyle('QuoteSection', parent=styles['Heading2'], fontSize=14,
                                  textColor=TEXT_COLOR, spaceBefore=12, spaceAfter=6),
        'body': ParagraphStyle('QuoteBody', parent=styles['Normal'], fontSize=10,
                               textColor=TEXT_COLOR, leading=13),
        'small': ParagraphStyle('QuoteSmall', parent=styles['Normal'], fontSize=8,
                                textColor=MUTED_COLOR, leading=10),
        'model': ParagraphStyle('QuoteModel', parent=styles['Heading3'], fontSize=13,
                                textColor=BRAND_COLOR, spaceAfter=2),
        'package': ParagraphStyle('QuotePackage', parent=styles['Normal'], fontSize=10,
                                  textColor=BRAND_COLOR, fontName='Helvetica-Bold', leading=13),
    }


def _p(text, style):
    return Paragraph(escape(str(text)), style)


def _header(quote: Quote, company: CompanyInfo, s):
    return [
        _p(company.name, s['title']),
        _p(company.tagline, s['subtitle']),
        _p(f"Quote ID: {quote.quote_id} | Date: {quote.created_at.strftime('%Y-%m-%d')}", s['meta']),
    ]


def _client_block(quote: Quote, s):
    client = quote.client
    rows = [
        [_p(f"Name: {client.full_name or 'N/A'}", s['body']),
         _p(f"Address: {client.address or 'N/A'}", s['body'])],
        [_p(f"Phone: {client.phone or 'N/A'}", s['body']),
         _p(f"ZIP Code: {client.zip or 'N/A'}", s['body'])],
        [_p(f"Email: {client.email or 'N/A'}", s['body']),
         _p(f"Preferred Date: {client.preferred_date or 'TBD'}", s['body'])],
    ]
    table = Table(rows, colWidths=[3.5 * inch, 3.5 * inch])
    table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
    ]))
    story = [_p("Client Information", s['section']), table]
    if client.notes:
        story.append(Spacer(1, 4))
        story.append(_p(f"Special Instructions: {client.notes}", s['body']))
    return story


def _model_block(quote: Quote, s):
    model = quote.model
    specs = model.specs
    spec_rows = [
        [f"Length: {specs.length}", f"Width: {specs.width}"],
        [f"Height: {specs.height}", f"Weight: {specs.weight}"],
        [f"Bedrooms: {specs.bedrooms}", f"Bathrooms: {specs.bathrooms}"],
    ]
    spec_table = Table(spec_rows, colWidths=[3.4 * inch, 3.4 * inch])
    spec_table.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('TEXTCOLOR', (0, 0), (-1, -1), TEXT_COLOR),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
    ]))
    panel = Table(
        [[_p(f"{model.name} ({model.code})", s['model'])],
         [_p(model.description, s['body'])],
         [spec_table]],
        colWidths=[7 * inch],
    )
    panel.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), PANEL_COLOR),
        ('LEFTPADDING', (0, 0), (-1, -1), 10),
        ('RIGHTPADDING', (0, 0), (-1, -1), 10),
    ]))
    return [_p("Selected Model", s['section']), KeepTogether(panel)]


def _options_block(quote: Quote, s):
    if not quote.options:
        return []

    rows = [['Option', 'Category', 'Price']]
    package_rows = []
    for idx, option in enumerate(quote.options, start=1):
        name_style = s['package'] if option.is_package else s['body']
        cell = [_p(option.name, name_style)]
        if option.description:
            cell.append(_p(option.description, s['small']))
        rows.append([cell, _p(option.subject, s['small']), format_currency(option.price)])
        if option.is_package:
            package_rows.append(idx)

    table = Table(rows, colWidths=[4.3 * inch, 1.6 * inch, 1.1 * inch], repeatRows=1)
    style = [
        ('BACKGROUND', (0, 0), (-1, 0), BRAND_COLOR),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('ALIGN', (2, 0), (2, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LINEBELOW', (0, 1), (-1, -1), 0.5, RULE_COLOR),
    ]
    for row in package_rows:
        style.append(('BACKGROUND', (0, row), (-1, row), PANEL_COLOR))
    table.setStyle(TableStyle(style))
    return [_p("Selected Options & Upgrades", s['section']), table]


def _pricing_block(quote: Quote, s):
    pricing = quote.pricing
    rows = [
        ['Base Model:', format_currency(pricing.base_price)],
        ['Options & Upgrades:', format_currency(pricing.options_total)],
        ['Subtotal:', format_currency(pricing.subtotal)],
        [f"Tax ({format_percent(pricing.tax_rate)}):", format_currency(pricing.tax)],
        ['Delivery Fee:', format_currency(pricing.delivery_fee)],
        ['TOTAL:', format_currency(pricing.total)],
        [f"Est. Monthly Payment ({pricing.term_months} mo @ {format_percent(pricing.apr)} APR):",
         format_currency(pricing.monthly_payment)],
    ]
    table = Table(rows, colWidths=[5 * inch, 2 * inch])
    table.setStyle(TableStyle([
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), TEXT_COLOR),
        ('LINEBELOW', (0, 0), (-1, 4), 0.5, RULE_COLOR),
        ('FONTNAME', (0, 5), (-1, 5), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 5), (-1, 5), 14),
        ('TEXTCOLOR', (0, 5), (-1, 5), BRAND_COLOR),
        ('LINEABOVE', (0, 5), (-1, 5), 1.5, BRAND_COLOR),
        ('FONTSIZE', (0, 6), (-1, 6), 9),
        ('TEXTCOLOR', (0, 6), (-1, 6), MUTED_COLOR),
    ]))
    return [_p("Pricing Summary", s['section']), KeepTogether(table)]


def _terms_block(s):
    story = [_p("Terms & Conditions", s['section'])]
    for term in TERMS:
        story.append(_p(f"• {term}", s['body']))
    return story


def _signature_block(s):
    table = Table(
        [['', '', ''], ['Client Signature', '', 'Date']],
        colWidths=[3.3 * inch, 0.4 * inch, 3.3 * inch],
        rowHeights=[0.5 * inch, None],
    )
    table.setStyle(TableStyle([
        ('LINEBELOW', (0, 0), (0, 0), 1, MUTED_COLOR),
        ('LINEBELOW', (2, 0), (2, 0), 1, MUTED_COLOR),
        ('FONTSIZE', (0, 1), (-1, 1), 9),
        ('TEXTCOLOR', (0, 1), (-1, 1), MUTED_COLOR),
    ]))
    return [Spacer(1, 0.3 * inch), KeepTogether(table)]


def _footer(company: CompanyInfo):
    def draw(canvas, doc):
        canvas.saveState()
        canvas.setFont('Helvetica', 8)
        canvas.setFillColor(MUTED_COLOR)
        contact = ' | '.join(p for p in (company.name, company.address) if p)
        reach = ' | '.join(p for p in (f"Phone: {company.phone}" if company.phone else '',
                                       f"Email: {company.email}" if company.email else '') if p)
        width = letter[0]
        canvas.drawCentredString(width / 2, 0.55 * inch, contact)
        if reach:
            canvas.drawCentredString(width / 2, 0.4 * inch, reach)
        canvas.drawRightString(width - 0.75 * inch, 0.4 * inch, f"Page {doc.page}")
        canvas.restoreState()
    return draw


def build_story(quote: Quote, company: CompanyInfo):
    """Flowables for the whole quote, in reading order"""
    s = _styles()
    story = []
    story += _header(quote, company, s)
    story += _client_block(quote, s)
    story += _model_block(quote, s)
    story += _options_block(quote, s)
    story += _pricing_block(quote, s)
    story += _terms_block(s)
    story += _signature_block(s)
    return story


def render_quote_pdf(quote: Quote, company: Optional[CompanyInfo] = None) -> bytes:
    """
    Render a quote to PDF bytes.

    Args:
        quote: Frozen quote snapshot
        company: Business identity for the header and footer

    Returns:
        PDF document bytes

    Raises:
        RenderError: If layout or encoding fails
    """
    company = company or CompanyInfo()
    try:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            leftMargin=0.75 * inch, rightMargin=0.75 * inch,
            topMargin=0.75 * inch, bottomMargin=0.9 * inch,
            title=f"Quote {quote.quote_id}",
            author=company.name,
            subject=f"{quote.model.name} quote",
            invariant=1,
        )
        footer = _footer(company)
        doc.build(build_story(quote, company), onFirstPage=footer, onLaterPages=footer)
        pdf_bytes = buffer.getvalue()
    except Exception as e:
        logger.error(f"Error rendering quote PDF {quote.quote_id}: {e}", exc_info=True)
        raise RenderError(f"Could not render quote {quote.quote_id}: {e}", quote_id=quote.quote_id) from e

    if not pdf_bytes.startswith(b'%PDF'):
        raise RenderError(f"Renderer produced no PDF for quote {quote.quote_id}", quote_id=quote.quote_id)

    logger.info(f"Rendered quote {quote.quote_id} ({len(pdf_bytes)} bytes)")
    return pdf_bytes


def quote_filename(quote: Quote, prefix: str = 'firefly-quote') -> str:
    """Download name such as ``firefly-quote-the-magnolia-FF-...pdf``"""
    slug = '-'.join(quote.model.name.lower().split())
    return sanitize_filename(f"{prefix}-{slug}-{quote.quote_id}.pdf")


# ============================================================================
# RENDER COORDINATION
# ============================================================================

class RenderTicket:
    """Handle for one submitted render."""

    def __init__(self, coordinator: 'RenderCoordinator', key: str, generation: int, future):
        self._coordinator = coordinator
        self.key = key
        self.generation = generation
        self.future = future
        self._accepted = False

    @property
    def superseded(self) -> bool:
        return not self._accepted and not self._coordinator.is_current(self)

    def result(self, timeout: Optional[float] = None) -> bytes:
        """
        Wait for the PDF.

        Raises:
            RenderCancelled: If a newer render for the same key was submitted
            RenderError: If this render failed
        """
        try:
            return self._wait(timeout)
        finally:
            self._coordinator.release(self)

    def _wait(self, timeout: Optional[float]) -> bytes:
        try:
            pdf_bytes = self.future.result(timeout)
        except CancelledError:
            self._coordinator._record('cancelled')
            raise RenderCancelled(f"Render {self.generation} for {self.key!r} was cancelled")
        except RenderError:
            self._coordinator._record('failed')
            raise
        except FutureTimeout:
            self._coordinator._record('timed_out')
            raise RenderError(f"Render {self.generation} for {self.key!r} timed out after {timeout}s")

        if self.superseded:
            self._coordinator._record('superseded')
            raise RenderCancelled(f"Render {self.generation} for {self.key!r} was superseded")

        self._accepted = True
        self._coordinator._record('completed')
        return pdf_bytes


class RenderCoordinator:
    """
    Runs PDF renders off the request thread, one live render per key.

    Submitting a new render for a key cancels the previous one; if the old
    one has already started it still runs, but its result is refused, so a
    late finisher can never replace a newer PDF.
    """

    def __init__(self, renderer: Callable[..., bytes] = render_quote_pdf,
                 company: Optional[CompanyInfo] = None, max_workers: int = 2,
                 logger: logging.Logger = None):
        self.renderer = renderer
        self.company = company
        self.logger = logger or logging.getLogger(__name__)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='quote-pdf')
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._current: Dict[str, RenderTicket] = {}
        self._outcomes = Counter()

    def submit(self, quote: Quote, key: str = 'default') -> RenderTicket:
        with self._lock:
            previous = self._current.get(key)
            if previous is not None and previous.future.cancel():
                self.logger.debug(f"Cancelled queued render {previous.generation} for {key!r}")
            elif previous is not None:
                self.logger.debug(f"Render {previous.generation} for {key!r} superseded while running")

            future = self._executor.submit(self.renderer, quote, self.company)
            ticket = RenderTicket(self, key, next(self._counter), future)
            self._current[key] = ticket
            return ticket

    def render(self, quote: Quote, key: str = 'default', timeout: Optional[float] = None) -> bytes:
        return self.submit(quote, key).result(timeout)

    def is_current(self, ticket: RenderTicket) -> bool:
        with self._lock:
            return self._current.get(ticket.key) is ticket

    def release(self, ticket: RenderTicket):
        with self._lock:
            if self._current.get(ticket.key) is ticket:
                del self._current[ticket.key]

    def stats(self) -> Dict[str, int]:
        """Outcome counts since startup, plus renders still outstanding"""
        with self._lock:
            counts = {outcome: self._outcomes[outcome] for outcome in RENDER_OUTCOMES}
            counts['in_flight'] = sum(1 for t in self._current.values() if not t.future.done())
        return counts

    def _record(self, outcome: str):
        with self._lock:
            self._outcomes[outcome] += 1

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
