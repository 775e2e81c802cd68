# numbering.py

# Números de acta con formato <PREFIJO>-<AÑO>-<NNNN>. El contador vive en la
# tabla secuencias_acta y se incrementa con una sola sentencia atómica dentro
# de la transacción que crea el acta: si esa transacción hace rollback, el
# número no se consume.

from sqlalchemy import select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from extensions import db
from models import SecuenciaActa, ahora


def formatear_numero(prefijo, anio, numero):
    return f"{prefijo}-{anio}-{numero:04d}"


def _incrementar(prefijo, anio):
    tabla = SecuenciaActa.__table__
    dialecto = db.engine.dialect.name
    valores = {'prefijo': prefijo, 'anio': anio, 'ultimo_numero': 1}

    if dialecto == 'mysql':
        stmt = mysql_insert(tabla).values(**valores)
        stmt = stmt.on_duplicate_key_update(ultimo_numero=tabla.c.ultimo_numero + 1)
    elif dialecto in ('sqlite', 'postgresql'):
        insert = sqlite_insert if dialecto == 'sqlite' else postgresql_insert
        stmt = insert(tabla).values(**valores).on_conflict_do_update(
            index_elements=['prefijo', 'anio'],
            set_={'ultimo_numero': tabla.c.ultimo_numero + 1}
        )
    else:
        # Motores sin upsert: bloqueo de fila y actualización
        secuencia = db.session.query(SecuenciaActa).filter_by(
            prefijo=prefijo, anio=anio).with_for_update().first()
        if secuencia is None:
            db.session.add(SecuenciaActa(**valores))
        else:
            secuencia.ultimo_numero += 1
        db.session.flush()
        return

    db.session.execute(stmt)


def siguiente_numero(prefijo, anio=None):
    """Reserva y devuelve el siguiente número de acta para el prefijo y año."""
    anio = anio or ahora().year
    _incrementar(prefijo, anio)
    tabla = SecuenciaActa.__table__
    numero = db.session.execute(
        select(tabla.c.ultimo_numero).where(tabla.c.prefijo == prefijo, tabla.c.anio == anio)
    ).scalar_one()
    return formatear_numero(prefijo, anio, numero)
