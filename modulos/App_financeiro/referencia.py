"""
Código de referência compartilhado
==================================

Transações e agendamentos usam a mesma numeração de ``reference_code``.
O alocador lê o maior código das duas tabelas, soma um deslocamento
aleatório e devolve o valor; ``reservar_codigo_referencia`` grava o valor
em poupeja_reference_codes, cuja chave primária recusa duplicatas.
"""

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor

from flask import current_app
from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError

from erros import AppError, ErrorKind
from extensions import db, get_servicos
from models import ReferenceCode, ScheduledTransaction, Transaction

logger = logging.getLogger(__name__)

# Piso: códigos nunca ficam abaixo de 8 dígitos
CODIGO_MINIMO = 10_000_000
OFFSET_MAXIMO = 100


class ReferenceCodeAllocator:
    """Calcula o próximo código a partir dos máximos das duas tabelas.

    ``fetch_scheduled_max`` e ``fetch_transaction_max`` devolvem o maior
    código existente (ou None). As duas leituras rodam em paralelo.
    """

    def __init__(self, fetch_scheduled_max, fetch_transaction_max, max_retries=3,
                 sleep=time.sleep, clock=time.time, randint=random.randint):
        self.fetch_scheduled_max = fetch_scheduled_max
        self.fetch_transaction_max = fetch_transaction_max
        self.max_retries = max(1, int(max_retries))
        self.sleep = sleep
        self.clock = clock
        self.randint = randint

    def _fetch_maxima(self):
        with ThreadPoolExecutor(max_workers=2) as pool:
            scheduled = pool.submit(self.fetch_scheduled_max)
            transaction = pool.submit(self.fetch_transaction_max)
            return scheduled.result(), transaction.result()

    def fallback_code(self) -> int:
        millis = int(self.clock() * 1000)
        return CODIGO_MINIMO + (millis % 1_000_000)

    def next_code(self) -> int:
        for attempt in range(self.max_retries):
            try:
                maxima = self._fetch_maxima()
            except Exception as e:
                if attempt == self.max_retries - 1:
                    code = self.fallback_code()
                    logger.error("[REFERENCIA] Leitura falhou %s vezes, usando fallback %s: %s",
                                 self.max_retries, code, e)
                    return code
                logger.warning("[REFERENCIA] Tentativa %s falhou: %s", attempt + 1, e)
                self.sleep(0.1 * (attempt + 1))
                continue

            max_code = CODIGO_MINIMO
            for value in maxima:
                if isinstance(value, int) and not isinstance(value, bool):
                    max_code = max(max_code, value)
            return max_code + self.randint(1, OFFSET_MAXIMO)


def _maior_codigo(engine, model):
    column = model.reference_code
    stmt = select(column).where(column.isnot(None)).order_by(column.desc()).limit(1)
    with engine.connect() as conn:
        return conn.execute(stmt).scalar()


def alocador_do_banco(engine, max_retries=3) -> ReferenceCodeAllocator:
    """Alocador que lê poupeja_scheduled_transactions e poupeja_transactions.

    Cada leitura abre sua própria conexão, pois roda em outra thread.
    """
    return ReferenceCodeAllocator(
        lambda: _maior_codigo(engine, ScheduledTransaction),
        lambda: _maior_codigo(engine, Transaction),
        max_retries=max_retries,
    )


def reservar_codigo_referencia(origem: str, tentativas: int = None) -> int:
    """Aloca um código e o reserva no registro; conflito gera nova alocação."""
    if tentativas is None:
        tentativas = current_app.config.get("REFERENCE_CODE_CLAIM_ATTEMPTS", 5)
    alocador = get_servicos().alocador()
    engine = db.engine
    for tentativa in range(max(1, tentativas)):
        code = alocador.next_code()
        try:
            with engine.begin() as conn:
                conn.execute(insert(ReferenceCode.__table__).values(code=code, origem=origem))
        except IntegrityError:
            logger.warning("[REFERENCIA] Código %s já reservado (tentativa %s)", code, tentativa + 1)
            continue
        return code
    raise AppError(ErrorKind.CONFLICT, "Não foi possível reservar um código de referência único")
