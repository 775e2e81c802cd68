"""Tests for single-use signature tokens."""

from datetime import timedelta

import pytest

from extensions import db
from models import TokenFirma
from errors import TokenNotFound, TokenAlreadyUsed, TokenExpired, ValidationError
import documents
import tokens


@pytest.fixture
def acta(ctx, crear_articulo, receptor):
    item_id = crear_articulo(serial='SN-T01')
    acta = documents.create('entrega', receptor, [{'id_articulo': item_id}])
    db.session.commit()
    return acta


def test_issue_requires_recipient_email(acta):
    with pytest.raises(ValidationError):
        tokens.issue(acta, None)


def test_issue_generates_unguessable_value(acta):
    token = tokens.issue(acta, 'laura@example.com')
    otro = tokens.issue(acta, 'laura@example.com')
    assert len(token.token) >= 40
    assert token.token != otro.token
    assert token.fecha_expiracion is None


def test_new_token_cancels_previous_pending(acta):
    primero = tokens.issue(acta, 'laura@example.com')
    segundo = tokens.issue(acta, 'otra@example.com')
    db.session.commit()

    assert primero.estado == 'cancelado'
    assert segundo.estado == 'pendiente'
    assert TokenFirma.query.filter_by(id_acta=acta.id, estado='pendiente').count() == 1
    with pytest.raises(TokenAlreadyUsed):
        tokens.redeem(primero.token)


def test_redeem_returns_document(acta):
    token = tokens.issue(acta, 'laura@example.com')
    assert tokens.redeem(token.token) is acta


@pytest.mark.parametrize('valor', ['no-existe', '', None])
def test_unknown_token(ctx, valor):
    with pytest.raises(TokenNotFound):
        tokens.redeem(valor)


def test_signed_token_reports_signature_date(acta):
    token = tokens.issue(acta, 'laura@example.com')
    tokens.consume(token.token, 'firmado', ip='10.0.0.5', user_agent='x' * 800)
    db.session.commit()

    assert token.user_agent == 'x' * 500
    assert token.ip_firma == '10.0.0.5'
    with pytest.raises(TokenAlreadyUsed) as excinfo:
        tokens.redeem(token.token)
    detalle = excinfo.value.to_dict()
    assert detalle['estado'] == 'firmado'
    assert detalle['fechaFirma']


def test_rejected_token_reports_reason(acta):
    token = tokens.issue(acta, 'laura@example.com')
    tokens.consume(token.token, 'rechazado', motivo='Falta el cargador')
    db.session.commit()

    with pytest.raises(TokenAlreadyUsed) as excinfo:
        tokens.redeem(token.token)
    assert excinfo.value.to_dict()['motivo'] == 'Falta el cargador'


def test_token_cannot_be_consumed_twice(acta):
    token = tokens.issue(acta, 'laura@example.com')
    tokens.consume(token.token, 'firmado')
    with pytest.raises(TokenAlreadyUsed):
        tokens.consume(token.token, 'rechazado', motivo='Tarde')


def test_expired_token(acta):
    token = tokens.issue(acta, 'laura@example.com', ttl=timedelta(seconds=-1))
    with pytest.raises(TokenExpired) as excinfo:
        tokens.redeem(token.token)
    assert excinfo.value.status_code == 400
    assert 'fechaExpiracion' in excinfo.value.to_dict()


def test_consume_only_accepts_final_states(acta):
    token = tokens.issue(acta, 'laura@example.com')
    with pytest.raises(ValidationError):
        tokens.consume(token.token, 'pendiente')
