# utils

import json
import random
import sys


from   datetime                import datetime
from   fastapi                 import FastAPI
from   fastapi.middleware.cors import CORSMiddleware
from   pydantic                import BaseModel
from   typing                  import Any


import numpy as np


def get_now_str() -> str:
	return datetime.now().isoformat()


def get_timestamp_str() -> str:
	return datetime.now().strftime("%Y%m%d_%H%M%S_%f")


def log_print(*args: Any, **kwargs: Any):
	"""Timestamped console line for process-level diagnostics."""
	stamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
	print(f"[{stamp}]", *args, **kwargs, file=sys.stderr, flush=True)


def serialize_result(value: Any) -> Any:
	"""Best effort conversion of arbitrary results into JSON-friendly data."""
	if isinstance(value, BaseModel):
		return value.model_dump()
	if isinstance(value, dict):
		return {str(k): serialize_result(v) for k, v in value.items()}
	if isinstance(value, (list, tuple, set)):
		return [serialize_result(v) for v in value]
	if isinstance(value, np.generic):
		return value.item()
	if isinstance(value, np.ndarray):
		return value.tolist()
	try:
		json.dumps(value)
		return value
	except (TypeError, ValueError):
		return str(value)


def add_middleware(app: FastAPI):
	app.add_middleware(
		CORSMiddleware,
		allow_origins     = ["*"],
		allow_credentials = True,
		allow_methods     = ["*"],
		allow_headers     = ["*"],
	)


def seed_everything(seed: int):
	random   .seed(seed)
	np.random.seed(seed)
