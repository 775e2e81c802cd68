# notifier.py

import smtplib
import ssl
import time
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.mime.base import MIMEBase
from email import encoders

from flask import current_app


class Notifier:
    """Envía un correo HTML con adjuntos. Devuelve True si se entregó."""

    def send(self, destinatarios, asunto, html, texto=None, adjuntos=None):
        raise NotImplementedError


class NullNotifier(Notifier):
    def send(self, destinatarios, asunto, html, texto=None, adjuntos=None):
        current_app.logger.info(f"Correo descartado (sin notificador): {asunto} -> {destinatarios}")
        return True


class EmailNotifier(Notifier):
    """
    Envío por SMTP con STARTTLS.

    Los adjuntos son tuplas (nombre_archivo, contenido_bytes, mimetype). Si el
    envío está deshabilitado en la configuración solo se registra en el log.
    Los fallos de red se reintentan con espera creciente; al agotarse los
    intentos se devuelve False, nunca se lanza la excepción.
    """

    def __init__(self, config):
        self.server = config['server']
        self.port = config['port']
        self.username = config['username']
        self.password = config['password']
        self.sender = config['sender']
        self.sender_name = config['sender_name']
        self.enabled = config.get('enabled', False)
        self.max_retries = max(1, config.get('max_retries', 3))
        self.retry_delay = config.get('retry_delay', 2)
        self.timeout = config.get('timeout', 20)

    def _construir_mensaje(self, destinatarios, asunto, html, texto, adjuntos):
        message = MIMEMultipart('mixed')
        message['Subject'] = asunto
        message['From'] = f"{self.sender_name} <{self.sender}>"
        message['To'] = ', '.join(destinatarios)

        cuerpo = MIMEMultipart('alternative')
        if texto:
            cuerpo.attach(MIMEText(texto, 'plain', 'utf-8'))
        cuerpo.attach(MIMEText(html, 'html', 'utf-8'))
        message.attach(cuerpo)

        for nombre, contenido, mimetype in adjuntos or []:
            maintype, _, subtype = (mimetype or 'application/octet-stream').partition('/')
            part = MIMEBase(maintype, subtype or 'octet-stream')
            part.set_payload(contenido)
            encoders.encode_base64(part)
            part.add_header('Content-Disposition', 'attachment', filename=nombre)
            message.attach(part)
        return message

    def _enviar(self, destinatarios, message):
        context = ssl.create_default_context()
        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as server:
            server.starttls(context=context)
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.sender, destinatarios, message.as_string())

    def send(self, destinatarios, asunto, html, texto=None, adjuntos=None):
        destinatarios = [d for d in destinatarios if d]
        if not destinatarios:
            current_app.logger.warning(f"Correo '{asunto}' sin destinatarios; no se envía.")
            return False

        if not self.enabled:
            current_app.logger.info(f"Envío de correos deshabilitado. Se enviaría: {asunto} -> {destinatarios}")
            return True

        message = self._construir_mensaje(destinatarios, asunto, html, texto, adjuntos)

        for attempt in range(self.max_retries):
            try:
                self._enviar(destinatarios, message)
                current_app.logger.info(f"Correo enviado a {destinatarios}: {asunto}")
                return True
            except (smtplib.SMTPException, OSError) as e:
                if attempt == self.max_retries - 1:
                    current_app.logger.error(f"No se pudo enviar '{asunto}' a {destinatarios}: {e}")
                    break
                wait_time = self.retry_delay * (attempt + 1)
                current_app.logger.warning(
                    f"Intento {attempt + 1} de envío fallido, reintentando en {wait_time} segundos... Error: {e}")
                time.sleep(wait_time)
        return False
