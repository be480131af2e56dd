"""
Printable lab report.

Draws straight onto a reportlab canvas: a header, the patient and order
blocks, one results table per test and the order notes.  The cursor moves
down the page and a new page is started whenever it reaches the bottom
margin; every page gets a numbered footer.
"""
import io
import textwrap

from django.conf import settings
from django.utils import timezone
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas

from clinic.models import LabOrder

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 2 * cm
BOTTOM = 2.2 * cm
LINE = 0.5 * cm

# x offsets of the results table columns
COLUMNS = [
    ('Parámetro', 0),
    ('Resultado', 6.0 * cm),
    ('Unidad', 9.0 * cm),
    ('Referencia', 11.0 * cm),
    ('Indicador', 15.2 * cm),
]

GENDER_LABELS = {'male': 'Masculino', 'female': 'Femenino', 'other': 'Otro', 'prefer_not_to_say': '-'}
STATUS_LABELS = {
    'pending': 'Pendiente',
    'samples_collected': 'Muestras recolectadas',
    'processing': 'En proceso',
    'completed': 'Completada',
    'cancelled': 'Cancelada',
}


def _fmt(value, places: int = 2) -> str:
    if value is None:
        return ''
    return f"{value:.{places}f}"


def reference_range(param) -> str:
    if param is None:
        return ''
    if param.reference_min is not None and param.reference_max is not None:
        return f"{_fmt(param.reference_min, param.decimal_places)} - {_fmt(param.reference_max, param.decimal_places)}"
    if param.reference_min is not None:
        return f">= {_fmt(param.reference_min, param.decimal_places)}"
    if param.reference_max is not None:
        return f"<= {_fmt(param.reference_max, param.decimal_places)}"
    return param.reference_text or ''


def result_flag(result, param) -> str:
    """H/L for values outside the reference range, CRIT for critical ones."""
    if result is None:
        return ''
    if result.is_critical:
        return 'CRIT'
    if result.value_numeric is None or param is None:
        return 'H' if result.is_abnormal else ''
    if param.reference_max is not None and result.value_numeric > param.reference_max:
        return 'H'
    if param.reference_min is not None and result.value_numeric < param.reference_min:
        return 'L'
    return ''


class _Page:
    """Canvas plus a vertical cursor that breaks pages at the bottom margin."""

    def __init__(self, buffer, title: str):
        self.c = canvas.Canvas(buffer, pagesize=A4)
        self.c.setTitle(title)
        self.page = 1
        self.y = PAGE_HEIGHT - MARGIN

    def footer(self):
        self.c.setFont('Helvetica-Oblique', 8)
        self.c.setFillColor(colors.grey)
        self.c.drawString(MARGIN, 1.2 * cm, settings.HOSPITAL_NAME)
        self.c.drawRightString(PAGE_WIDTH - MARGIN, 1.2 * cm, f"Página {self.page}")
        self.c.setFillColor(colors.black)

    def new_page(self):
        self.footer()
        self.c.showPage()
        self.page += 1
        self.y = PAGE_HEIGHT - MARGIN

    def ensure(self, height: float):
        if self.y - height < BOTTOM:
            self.new_page()

    def text(self, x: float, s: str, font: str = 'Helvetica', size: int = 10, advance: bool = True):
        self.ensure(LINE)
        self.c.setFont(font, size)
        self.c.drawString(x, self.y, s)
        if advance:
            self.y -= LINE

    def wrapped(self, x: float, s: str, width_chars: int, font: str = 'Helvetica', size: int = 10):
        for raw in (s or '-').splitlines() or ['-']:
            for line in textwrap.wrap(raw, width_chars) or ['']:
                self.text(x, line, font, size)

    def rule(self):
        self.ensure(0.3 * cm)
        self.c.setStrokeColor(colors.lightgrey)
        self.c.line(MARGIN, self.y + 0.3 * cm, PAGE_WIDTH - MARGIN, self.y + 0.3 * cm)
        self.c.setStrokeColor(colors.black)

    def finish(self):
        self.footer()
        self.c.showPage()
        self.c.save()


def _table_header(p: _Page):
    p.ensure(LINE * 2)
    p.c.setFillColor(colors.whitesmoke)
    p.c.rect(MARGIN - 0.1 * cm, p.y - 0.15 * cm, PAGE_WIDTH - 2 * MARGIN + 0.2 * cm, LINE, stroke=0, fill=1)
    p.c.setFillColor(colors.black)
    p.c.setFont('Helvetica-Bold', 9)
    for label, offset in COLUMNS:
        p.c.drawString(MARGIN + offset, p.y, label)
    p.y -= LINE


def _table_row(p: _Page, cells: list[str], flag: str):
    name_lines = textwrap.wrap(cells[0], 34) or ['']
    value_lines = textwrap.wrap(cells[1], 16) or ['']
    height = max(len(name_lines), len(value_lines)) * LINE
    if p.y - height < BOTTOM:
        p.new_page()
        _table_header(p)
    top = p.y
    p.c.setFont('Helvetica', 9)
    for i, line in enumerate(name_lines):
        p.c.drawString(MARGIN + COLUMNS[0][1], top - i * LINE, line)
    if flag:
        p.c.setFillColor(colors.red if flag == 'CRIT' else colors.darkorange)
        p.c.setFont('Helvetica-Bold', 9)
    for i, line in enumerate(value_lines):
        p.c.drawString(MARGIN + COLUMNS[1][1], top - i * LINE, line)
    p.c.setFont('Helvetica', 9)
    p.c.setFillColor(colors.black)
    p.c.drawString(MARGIN + COLUMNS[2][1], top, cells[2][:14])
    p.c.drawString(MARGIN + COLUMNS[3][1], top, cells[3][:26])
    if flag:
        p.c.setFillColor(colors.red if flag == 'CRIT' else colors.darkorange)
        p.c.setFont('Helvetica-Bold', 9)
        p.c.drawString(MARGIN + COLUMNS[4][1], top, flag)
        p.c.setFillColor(colors.black)
    p.y = top - height


def render_order_pdf(order: LabOrder) -> bytes:
    """Render ``order`` with its results and return the PDF bytes."""
    buffer = io.BytesIO()
    p = _Page(buffer, f"Informe {order.order_number}")
    patient = order.patient

    p.text(MARGIN, settings.HOSPITAL_NAME, 'Helvetica-Bold', 16)
    p.text(MARGIN, 'Informe de Laboratorio', 'Helvetica', 12)
    p.y -= 0.2 * cm
    p.rule()

    p.text(MARGIN, 'Paciente', 'Helvetica-Bold', 11)
    p.text(MARGIN, f"Nombre: {patient.full_name}")
    p.text(MARGIN, f"DNI: {patient.dni}    Edad: {patient.age()} años    "
                   f"Sexo: {GENDER_LABELS.get(patient.gender, '-')}")
    p.y -= 0.2 * cm

    doctor = (order.doctor.get_full_name() or order.doctor.username) if order.doctor_id else '-'
    created = timezone.localtime(order.created_at)
    p.text(MARGIN, 'Orden', 'Helvetica-Bold', 11)
    p.text(MARGIN, f"Número: {order.order_number}    Fecha: {created:%d/%m/%Y %H:%M}")
    p.text(MARGIN, f"Médico: {doctor}")
    p.text(MARGIN, f"Prioridad: {'Urgente' if order.priority == 'urgent' else 'Normal'}    "
                   f"Estado: {STATUS_LABELS.get(order.status, order.status)}")
    p.y -= 0.2 * cm
    p.rule()

    details = order.details.select_related('test').prefetch_related('results', 'results__parameter').order_by('id')
    for detail in details:
        p.ensure(LINE * 3)
        p.text(MARGIN, detail.display_name, 'Helvetica-Bold', 11)
        _table_header(p)
        results = list(detail.results.all())
        by_param = {r.parameter_id: r for r in results if r.parameter_id}
        general = [r for r in results if r.parameter_id is None]
        params = list(detail.test.parameters.filter(is_active=True)) if detail.test_id else []
        for param in params:
            r = by_param.get(param.id)
            value = r.value_text if r else 'Pendiente'
            _table_row(p, [param.name, value, param.unit, reference_range(param)], result_flag(r, param))
        for r in general:
            _table_row(p, ['Resultado', r.value_text, '', ''], result_flag(r, None))
        if not params and not general:
            _table_row(p, ['Resultado', 'Pendiente', '', ''], '')
        p.y -= 0.3 * cm

    if order.notes:
        p.ensure(LINE * 2)
        p.text(MARGIN, 'Observaciones', 'Helvetica-Bold', 11)
        p.wrapped(MARGIN, order.notes, 100)

    p.finish()
    return buffer.getvalue()
