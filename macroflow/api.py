# api

from   fastapi    import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from   pydantic   import BaseModel
from   typing     import Any, Optional


from   .engine    import ExecutionEngine, GraphValidationError
from   .event_bus import EventBus
from   .manager   import GraphManager
from   .schema    import ExecutionOptions, Graph, node_catalogue
from   .utils     import get_now_str, log_print, serialize_result


class GraphUploadRequest(BaseModel):
	graph : Graph
	name  : Optional[str] = None


class ExecutionStartRequest(BaseModel):
	name    : str
	options : Optional[ExecutionOptions] = None


class UserInputRequest(BaseModel):
	node_id    : str
	input_data : Any


class ContinueRequest(BaseModel):
	node_id : Optional[str] = None


def setup_api(server: Any, app: FastAPI, event_bus: EventBus, manager: GraphManager, engine: ExecutionEngine):

	@app.post("/shutdown")
	async def shutdown_server():
		nonlocal engine, server
		await engine.cancel_execution()
		if server and server.should_exit is False:
			server.should_exit = True
		result = {
			"status"  : "none",
			"message" : "Server shut down",
		}
		return result


	@app.post("/status")
	async def server_status():
		nonlocal engine
		result = {
			"status"     : "ready",
			"executions" : serialize_result(engine.get_execution_state()),
		}
		return result


	@app.post("/ping")
	async def ping():
		result = {
			"message"   : "pong",
			"timestamp" : get_now_str(),
		}
		return result


	@app.post("/schema")
	async def export_schema():
		result = {
			"nodes": node_catalogue(),
		}
		return result


	@app.post("/add")
	async def add_graph(request: GraphUploadRequest):
		nonlocal manager
		try:
			name  = await manager.add(request.graph, request.name)
			graph = await manager.get(name)
			result = {
				"name"   : name,
				"graph"  : graph.model_dump(mode="json") if graph else None,
				"status" : "added" if name else "failed",
			}
			return result
		except Exception as e:
			log_print(f"[API] /add error: {e}")
			raise HTTPException(status_code=500, detail=str(e))


	@app.post("/remove")
	@app.post("/remove/{name}")
	async def remove_graph(name: Optional[str] = None):
		nonlocal manager
		status = await manager.remove(name)
		result = {
			"name"   : name,
			"status" : "removed" if status else "failed",
		}
		return result


	@app.post("/get")
	@app.post("/get/{name}")
	async def get_graph(name: Optional[str] = None):
		nonlocal manager
		graph = await manager.get(name)
		if graph is None:
			raise HTTPException(status_code=404, detail=f"Graph '{name}' not found")
		if isinstance(graph, dict):
			graph = {k: v.model_dump(mode="json") for k, v in graph.items()}
		else:
			graph = graph.model_dump(mode="json")
		result = {
			"name"  : name,
			"graph" : graph,
		}
		return result


	@app.post("/list")
	async def list_graphs():
		nonlocal manager
		names  = await manager.list()
		result = {
			"names": names,
		}
		return result


	@app.post("/validate/{name}")
	async def validate_graph(name: str):
		nonlocal engine, manager
		graph = await manager.get(name)
		if graph is None:
			raise HTTPException(status_code=404, detail=f"Graph '{name}' not found")
		result = {
			"name"       : name,
			**engine.validate_graph(graph),
		}
		return result


	@app.post("/start")
	async def start_execution(request: ExecutionStartRequest):
		nonlocal engine, manager
		impl = await manager.impl(request.name)
		if not impl:
			raise HTTPException(status_code=404, detail=f"Graph '{request.name}' not found")
		try:
			execution_id = await engine.start_execution(
				graph   = impl["graph"  ],
				backend = impl["backend"],
				options = request.options,
			)
		except GraphValidationError as e:
			raise HTTPException(status_code=400, detail=str(e))
		except Exception as e:
			log_print(f"Error starting execution: {e}")
			raise HTTPException(status_code=500, detail=str(e))
		result = {
			"execution_id" : execution_id,
			"status"       : "started",
		}
		return result


	@app.post("/exec_list")
	async def list_executions():
		nonlocal engine
		result = {
			"execution_ids": engine.list_executions(),
		}
		return result


	@app.post("/exec_state")
	@app.post("/exec_state/{execution_id}")
	async def execution_state(execution_id: Optional[str] = None):
		nonlocal engine
		state = engine.get_execution_state(execution_id)
		if execution_id and state is None:
			raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found")
		result = {
			"execution_id" : execution_id,
			"state"        : serialize_result(state),
		}
		return result


	@app.post("/exec_cancel")
	@app.post("/exec_cancel/{execution_id}")
	async def cancel_execution(execution_id: Optional[str] = None):
		nonlocal engine
		state = await engine.cancel_execution(execution_id)
		if execution_id and state is None:
			raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found")
		result = {
			"execution_id" : execution_id,
			"status"       : "cancelling",
			"state"        : serialize_result(state),
		}
		return result


	@app.post("/exec_input/{execution_id}")
	async def provide_user_input(execution_id: str, request: UserInputRequest):
		nonlocal engine
		if engine.get_execution_state(execution_id) is None:
			raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found")
		accepted = await engine.provide_user_input(
			execution_id = execution_id,
			node_id      = request.node_id,
			user_input   = request.input_data,
		)
		result = {
			"execution_id" : execution_id,
			"status"       : "input_received" if accepted else "not_waiting",
			"node_id"      : request.node_id,
			"input_data"   : request.input_data,
		}
		return result


	@app.post("/exec_continue/{execution_id}")
	async def continue_loop(execution_id: str, request: Optional[ContinueRequest] = None):
		nonlocal engine
		if engine.get_execution_state(execution_id) is None:
			raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found")
		node_id  = request.node_id if request else None
		signaled = await engine.continue_loop(execution_id, node_id)
		result = {
			"execution_id" : execution_id,
			"node_id"      : node_id,
			"status"       : "continued" if signaled else "not_waiting",
		}
		return result


	@app.websocket("/events")
	async def execution_events(websocket: WebSocket, execution_id: Optional[str] = None):
		nonlocal event_bus
		await event_bus.add_websocket_client(websocket, execution_id)
		try:
			while True:
				data = await websocket.receive_text()
				log_print(f"Received WebSocket message: {data}")
		except WebSocketDisconnect:
			log_print("WebSocket client disconnected")
		except Exception as e:
			log_print(f"WebSocket error: {e}")
		event_bus.remove_websocket_client(websocket)


	@app.on_event("shutdown")
	async def cancel_on_shutdown():
		nonlocal engine
		await engine.cancel_execution()
