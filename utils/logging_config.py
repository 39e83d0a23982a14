import os
import json
import logging
from logging.handlers import TimedRotatingFileHandler
from datetime import datetime, timezone
from pathlib import Path
import contextvars
from typing import Optional

from fastapi import Request
from starlette.responses import Response

from utils.config import Settings, get_settings
from utils.jwt import user_id_from_payload, verify_access_token

# Context variables for correlation and user identity
correlation_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("correlation_id", default=None)
user_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("user_id", default=None)

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "correlation_id", "user_id"}


class ContextFilter(logging.Filter):
	def filter(self, record: logging.LogRecord) -> bool:
		record.correlation_id = correlation_id_ctx.get()
		if getattr(record, "user_id", None) is None:
			record.user_id = user_id_ctx.get()
		return True


class JsonFormatter(logging.Formatter):
	def format(self, record: logging.LogRecord) -> str:
		payload = {
			"timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
			"level": record.levelname,
			"logger": record.name,
			"message": record.getMessage(),
			"correlation_id": getattr(record, "correlation_id", None),
			"user_id": getattr(record, "user_id", None),
		}
		# Structured fields passed via extra=
		for key, val in record.__dict__.items():
			if key not in _RESERVED_ATTRS and val is not None:
				payload[key] = val
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		return json.dumps(payload, ensure_ascii=False, default=str)


def _make_rotating_file_handler(path: Path, level: int, backup_count: int) -> logging.Handler:
	path.parent.mkdir(parents=True, exist_ok=True)
	handler = TimedRotatingFileHandler(path, when="midnight", backupCount=backup_count, utc=True)
	handler.setLevel(level)
	handler.setFormatter(JsonFormatter())
	handler.addFilter(ContextFilter())
	return handler


def init_logging(settings: Optional[Settings] = None):
	"""Initialize application logging with console + rotating file handlers."""
	settings = settings or get_settings()
	log_dir = Path(settings.log_dir)
	level = getattr(logging, settings.log_level, logging.INFO)

	root = logging.getLogger()
	root.setLevel(level)

	# Remove existing handlers to avoid duplicates on reload
	for h in list(root.handlers):
		root.removeHandler(h)
		h.close()

	# Console handler (still JSON for consistency)
	console = logging.StreamHandler()
	console.setLevel(level)
	console.setFormatter(JsonFormatter())
	console.addFilter(ContextFilter())
	root.addHandler(console)

	# File handlers
	root.addHandler(_make_rotating_file_handler(log_dir / "app.log", level, settings.log_backup_count))
	root.addHandler(_make_rotating_file_handler(log_dir / "error.log", logging.ERROR, settings.log_backup_count))

	logging.getLogger(__name__).info("Logging initialized")


def install_request_logging(app):
	"""Attach request logging middleware to the FastAPI app."""
	logger = logging.getLogger("request")

	@app.middleware("http")
	async def _log_middleware(request: Request, call_next):
		# Correlation ID from headers if provided; otherwise generate
		corr = request.headers.get("X-Request-ID") or request.headers.get("X-Correlation-ID")
		if not corr:
			corr = os.urandom(8).hex()
		correlation_id_ctx.set(corr)

		# Best-effort parse of user id from the token to enrich logs
		raw = request.headers.get("Authorization") or request.headers.get("x-auth-token")
		user_id_ctx.set(None)
		if raw:
			token = raw.split(" ", 1)[1] if " " in raw else raw
			user_id_ctx.set(user_id_from_payload(verify_access_token(token)))

		start = datetime.now(timezone.utc)
		try:
			response: Response = await call_next(request)
			latency_ms = int((datetime.now(timezone.utc) - start).total_seconds() * 1000)
			logger.info(
				"request_completed",
				extra={
					"path": request.url.path,
					"method": request.method,
					"status_code": response.status_code,
					"latency_ms": latency_ms,
					"client_host": request.client.host if request.client else None,
				},
			)
			response.headers["X-Request-ID"] = corr
			return response
		except Exception:
			latency_ms = int((datetime.now(timezone.utc) - start).total_seconds() * 1000)
			logger.error(
				"request_failed",
				exc_info=True,
				extra={
					"path": request.url.path,
					"method": request.method,
					"status_code": 500,
					"latency_ms": latency_ms,
					"client_host": request.client.host if request.client else None,
				},
			)
			raise
		finally:
			# Clear context to avoid bleeding into other requests
			correlation_id_ctx.set(None)
			user_id_ctx.set(None)


def mask_email(email: str) -> str:
	try:
		local, domain = email.split("@", 1)
		if len(local) <= 1:
			masked_local = "*"
		else:
			masked_local = local[0] + "*" * (len(local) - 1)
		return f"{masked_local}@{domain}"
	except Exception:
		return "***@***"
