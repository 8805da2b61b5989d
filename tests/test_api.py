import time

import pytest

from   fastapi             import FastAPI
from   fastapi.testclient  import TestClient

from   conftest            import GraphBuilder, make_backend

from   macroflow.api       import setup_api
from   macroflow.engine    import ExecutionEngine
from   macroflow.event_bus import EventBus
from   macroflow.manager   import GraphManager
from   macroflow.schema    import PrintFlow, ReadInputFlow, SetVariableFlow
from   macroflow.values    import DataType


@pytest.fixture
def client():
	event_bus = EventBus()
	manager   = GraphManager(event_bus, backend_factory=lambda graph: make_backend())
	engine    = ExecutionEngine(event_bus)
	app       = FastAPI()
	setup_api(None, app, event_bus, manager, engine)
	with TestClient(app) as client:
		yield client


def hello_graph():
	b = GraphBuilder("hello")
	b.var("greeting", DataType.STRING)
	b.chain(PrintFlow(id="p", text="hi"), SetVariableFlow(id="set", variable="greeting", value="done"))
	return b.graph.model_dump(mode="json")


def wait_status(client, execution_id, statuses, timeout=2.0):
	deadline = time.monotonic() + timeout
	while True:
		state = client.post(f"/exec_state/{execution_id}").json()["state"]
		if state["status"] in statuses:
			return state
		assert time.monotonic() < deadline, f"still {state['status']}"
		time.sleep(0.01)


def test_ping_and_schema(client):
	assert client.post("/ping").json()["message"] == "pong"

	nodes = client.post("/schema").json()["nodes"]
	types = {n["type"] for n in nodes}
	assert {"entry", "print", "while_loop", "find_image", "wait_for_color"} <= types
	assert "pointer_type" not in types


def test_graph_store_round_trip(client):
	added = client.post("/add", json={"graph": hello_graph(), "name": "demo"}).json()
	assert added["status"] == "added"
	assert added["name"] == "demo"

	assert client.post("/list").json()["names"] == ["demo"]

	graph = client.post("/get/demo").json()["graph"]
	assert [n["id"] for n in graph["nodes"]] == ["entry", "p", "set"]

	assert client.post("/get/nope").status_code == 404
	assert client.post("/remove/demo").json()["status"] == "removed"
	assert client.post("/remove/demo").json()["status"] == "failed"
	assert client.post("/list").json()["names"] == []


def test_validate_endpoint(client):
	graph = hello_graph()
	graph["connections"].append({"source": "p", "source_port": "flow_out", "target": "ghost", "target_port": "flow_in"})
	client.post("/add", json={"graph": graph, "name": "broken"})

	result = client.post("/validate/broken").json()
	assert result["valid"] is False
	assert "Connection to unknown node 'ghost'" in result["errors"]

	assert client.post("/validate/nope").status_code == 404
	assert client.post("/start", json={"name": "broken"}).status_code == 400


def test_start_and_observe_execution(client):
	client.post("/add", json={"graph": hello_graph(), "name": "demo"})

	started = client.post("/start", json={"name": "demo", "options": {"poll_interval_ms": 5}}).json()
	assert started["status"] == "started"
	execution_id = started["execution_id"]

	state = wait_status(client, execution_id, {"completed", "failed"})
	assert state["status"] == "completed"
	assert state["variables"] == {"greeting": "done"}
	assert [log["message"] for log in state["logs"] if log["node_id"] == "p"] == ["hi"]

	assert execution_id in client.post("/exec_list").json()["execution_ids"]
	assert client.post("/start", json={"name": "nope"}).status_code == 404
	assert client.post("/exec_state/unknown").status_code == 404
	assert client.post("/exec_cancel/unknown").status_code == 404


def test_input_and_cancel_endpoints(client):
	b = GraphBuilder("ask")
	b.var("answer", DataType.STRING)
	b.chain(ReadInputFlow(id="ask"), SetVariableFlow(id="keep", variable="answer"))
	b.data("ask", "value", "keep", "value")
	client.post("/add", json={"graph": b.graph.model_dump(mode="json")})

	first = client.post("/start", json={"name": "ask"}).json()["execution_id"]
	state = wait_status(client, first, {"running"})
	deadline = time.monotonic() + 2.0
	while not state["waiting_nodes"]:
		assert time.monotonic() < deadline
		time.sleep(0.01)
		state = client.post(f"/exec_state/{first}").json()["state"]

	reply = client.post(f"/exec_input/{first}", json={"node_id": "ask", "input_data": "yes"}).json()
	assert reply["status"] == "input_received"
	assert wait_status(client, first, {"completed"})["variables"]["answer"] == "yes"

	again = client.post(f"/exec_input/{first}", json={"node_id": "ask", "input_data": "late"}).json()
	assert again["status"] == "not_waiting"

	second = client.post("/start", json={"name": "ask"}).json()["execution_id"]
	wait_status(client, second, {"running"})
	cancelled = client.post(f"/exec_cancel/{second}").json()
	assert cancelled["status"] == "cancelling"
	assert wait_status(client, second, {"cancelled"})["status"] == "cancelled"

	continued = client.post(f"/exec_continue/{second}").json()
	assert continued["status"] == "not_waiting"


def test_events_socket_replays_history(client):
	client.post("/add", json={"graph": hello_graph(), "name": "demo"})
	with client.websocket_connect("/events") as websocket:
		message = websocket.receive_json()
	assert message["type"] == "event_history"
	assert "manager.graph_added" in [e["event_type"] for e in message["events"]]


def test_events_socket_scoped_to_one_execution(client):
	client.post("/add", json={"graph": hello_graph(), "name": "demo"})
	first  = client.post("/start", json={"name": "demo"}).json()["execution_id"]
	second = client.post("/start", json={"name": "demo"}).json()["execution_id"]
	wait_status(client, first,  {"completed"})
	wait_status(client, second, {"completed"})

	with client.websocket_connect(f"/events?execution_id={second}") as websocket:
		message = websocket.receive_json()

	runs = {e["execution_id"] for e in message["events"]}
	assert second in runs
	assert first not in runs
