# app

import argparse
import asyncio
import json
import os
import sys
import uvicorn


from   dotenv     import load_dotenv
from   fastapi    import FastAPI
from   typing     import Any


from   .api       import setup_api
from   .engine    import ExecutionEngine, ExecutionStatus, GraphValidationError
from   .event_bus import EventBus, EventType, ExecutionEvent, get_event_bus
from   .manager   import GraphManager, load_graph
from   .schema    import DEFAULT_CAPTURE_DIR, ExecutionOptions
from   .utils     import add_middleware, log_print, seed_everything


load_dotenv()


DEFAULT_APP_SEED : int = 777
DEFAULT_APP_PORT : int = 8000
DEFAULT_APP_HOST : str = "127.0.0.1"


def _asyncio_exception_handler(loop, context):
	# ConnectionResetError when a client drops a request mid-response on Windows
	if isinstance(context.get("exception"), ConnectionResetError):
		return
	loop.default_exception_handler(context)


def _execution_options(args: Any) -> ExecutionOptions:
	return ExecutionOptions(capture_dir=args.capture_dir)


async def run_server(args: Any):
	log_print("Server starting...")

	asyncio.get_event_loop().set_exception_handler(_asyncio_exception_handler)

	if args.seed != 0:
		seed_everything(args.seed)

	event_bus : EventBus        = get_event_bus   ()
	manager   : GraphManager    = GraphManager    (event_bus)
	engine    : ExecutionEngine = ExecutionEngine (event_bus, options=_execution_options(args))

	app: FastAPI = FastAPI(title="Macroflow")
	add_middleware(app)

	config = uvicorn.Config(app, host=args.host, port=args.port)
	server = uvicorn.Server(config)

	setup_api(server, app, event_bus, manager, engine)

	await server  .serve  ()
	await manager .remove ()

	log_print("Server shut down.")


async def run_graph(args: Any) -> int:
	"""Run one graph file to completion, printing its log lines; returns the process exit code"""
	if args.seed != 0:
		seed_everything(args.seed)

	graph = load_graph(args.graph)

	def print_log(event: ExecutionEvent):
		data = event.data or {}
		log_print(f"[{data.get('level', 'info')}] {event.node_id or '-'}: {data.get('message', '')}")

	event_bus = EventBus()
	event_bus.subscribe(EventType.NODE_LOG, print_log)
	engine = ExecutionEngine(event_bus, options=_execution_options(args))

	try:
		state = await engine.run(graph)
	except GraphValidationError as e:
		log_print(str(e))
		return 2

	log_print(f"Run {state.status.value} after {state.steps} steps")
	print(json.dumps(state.variables, indent=2))
	if state.status == ExecutionStatus.FAILED:
		log_print(f"Error: {state.error}")
	return 0 if state.status == ExecutionStatus.COMPLETED else 1


def main():
	parser = argparse.ArgumentParser(description="Macroflow desktop automation graph runner")
	parser .add_argument("--port"       , type=int, default=int(os.getenv("MACROFLOW_PORT", DEFAULT_APP_PORT))         , help="Listening port for control server"           )
	parser .add_argument("--host"       , type=str, default=os.getenv("MACROFLOW_HOST", DEFAULT_APP_HOST)              , help="Listening address for control server"        )
	parser .add_argument("--seed"       , type=int, default=DEFAULT_APP_SEED                                          , help="Seed for pseudorandom number generator"      )
	parser .add_argument("--capture-dir", type=str, default=os.getenv("MACROFLOW_CAPTURE_DIR", DEFAULT_CAPTURE_DIR), help="Directory for screen captures"               )
	parser .add_argument("--graph"      , type=str, default=None                                                      , help="Run this JSON graph file headless and exit"  )
	args   = parser.parse_args()

	if args.graph:
		sys.exit(asyncio.run(run_graph(args)))

	asyncio.run(run_server(args))


if __name__ == "__main__":
	main()
