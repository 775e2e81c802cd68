"""Tests for sequential acta numbering."""

from extensions import db
from models import SecuenciaActa
from numbering import siguiente_numero, formatear_numero


def test_numbers_are_consecutive_per_prefix_and_year(ctx):
    assert siguiente_numero('ACTA', 2026) == 'ACTA-2026-0001'
    assert siguiente_numero('ACTA', 2026) == 'ACTA-2026-0002'
    assert siguiente_numero('DEV', 2026) == 'DEV-2026-0001'
    assert siguiente_numero('ACTA-ASEO', 2026) == 'ACTA-ASEO-2026-0001'
    assert siguiente_numero('ACTA', 2026) == 'ACTA-2026-0003'


def test_counter_restarts_with_new_year(ctx):
    siguiente_numero('ACTA', 2025)
    siguiente_numero('ACTA', 2025)
    assert siguiente_numero('ACTA', 2026) == 'ACTA-2026-0001'
    assert siguiente_numero('ACTA', 2025) == 'ACTA-2025-0003'


def test_rolled_back_number_is_not_consumed(ctx):
    assert siguiente_numero('ACTA', 2026) == 'ACTA-2026-0001'
    db.session.commit()

    assert siguiente_numero('ACTA', 2026) == 'ACTA-2026-0002'
    db.session.rollback()

    assert siguiente_numero('ACTA', 2026) == 'ACTA-2026-0002'
    db.session.commit()
    secuencia = SecuenciaActa.query.filter_by(prefijo='ACTA', anio=2026).one()
    assert secuencia.ultimo_numero == 2


def test_default_year_is_current_year(ctx):
    from models import ahora
    assert siguiente_numero('ACTA') == f"ACTA-{ahora().year}-0001"


def test_format_pads_to_four_digits_but_never_truncates():
    assert formatear_numero('ACTA', 2026, 7) == 'ACTA-2026-0007'
    assert formatear_numero('ACTA', 2026, 12345) == 'ACTA-2026-12345'
