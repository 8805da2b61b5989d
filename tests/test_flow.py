import asyncio

from   conftest           import GraphBuilder, fast_options, make_backend

from   macroflow.engine   import ExecutionEngine, ExecutionStatus
from   macroflow.schema   import (
	AddNode, ArrayPopFlow, ArrayPushFlow, ArraySetFlow, BranchFlow, ConstantNode,
	DelayFlow, ForLoopAsyncFlow, ForLoopFlow, GateFlow, GetVariableNode, LessThanNode,
	PrintFlow, RandomNode, SequenceFlow, SetVariableFlow, WaitForConditionFlow, WhileLoopFlow,
)
from   macroflow.values   import DataType


def run(graph, **options):
	engine = ExecutionEngine(backend=make_backend())
	return asyncio.run(engine.run(graph, options=fast_options(**options)))


def printed(state):
	return [log["message"] for log in state.logs if log["level"] == "info" and (log["node_id"] or "").startswith("p_")]


async def until(predicate, timeout=2.0):
	loop     = asyncio.get_running_loop()
	deadline = loop.time() + timeout
	while not predicate():
		assert loop.time() < deadline, "condition not reached in time"
		await asyncio.sleep(0.005)


def test_while_loop_counts_to_three():
	b = GraphBuilder()
	b.var("x", DataType.INTEGER, 5)
	b.chain(SetVariableFlow(id="init", variable="x", value=0), WhileLoopFlow(id="loop"))
	b.add(GetVariableNode(id="get", variable="x"))
	b.add(LessThanNode(id="lt", b=3))
	b.add(AddNode(id="inc", b=1))
	b.add(SetVariableFlow(id="step", variable="x"))
	b.data("get", "value", "lt", "a")
	b.data("lt", "out", "loop", "condition")
	b.data("get", "value", "inc", "a")
	b.data("inc", "out", "step", "value")
	b.flow("loop", "step", source_port="loop")

	state = run(b.graph)

	assert state.status == ExecutionStatus.COMPLETED
	assert state.variables["x"] == 3


def test_always_true_while_loop_stops_at_iteration_cap():
	b = GraphBuilder()
	b.var("n", DataType.INTEGER, 0)
	b.chain(WhileLoopFlow(id="loop", condition=True))
	b.add(GetVariableNode(id="get", variable="n"))
	b.add(AddNode(id="inc", b=1))
	b.add(SetVariableFlow(id="step", variable="n"))
	b.data("get", "value", "inc", "a")
	b.data("inc", "out", "step", "value")
	b.flow("loop", "step", source_port="loop")
	b.add(PrintFlow(id="p_after", text="after"))
	b.flow("loop", "p_after", source_port="done")

	state = run(b.graph)

	assert state.variables["n"] == 1000
	assert printed(state) == ["after"]
	assert any("limit of 1000" in log["message"] for log in state.logs)


def test_while_loop_body_sees_current_iteration():
	b = GraphBuilder()
	b.var("x", DataType.INTEGER, 0)
	b.chain(WhileLoopFlow(id="loop"))
	b.add(GetVariableNode(id="get", variable="x"))
	b.add(LessThanNode(id="lt", b=3))
	b.add(AddNode(id="inc", b=1))
	b.add(PrintFlow(id="p_iteration"))
	b.add(SetVariableFlow(id="step", variable="x"))
	b.data("get", "value", "lt", "a")
	b.data("lt", "out", "loop", "condition")
	b.data("loop", "iteration", "p_iteration", "text")
	b.data("get", "value", "inc", "a")
	b.data("inc", "out", "step", "value")
	b.flow("loop", "p_iteration", source_port="loop")
	b.flow("p_iteration", "step")
	b.add(PrintFlow(id="p_total"))
	b.data("loop", "iteration", "p_total", "text")
	b.flow("loop", "p_total", source_port="done")

	state = run(b.graph)

	assert printed(state) == ["0", "1", "2", "3"]


def test_branch_fires_exactly_one_edge():
	for condition, expected in ((True, ["yes"]), (False, ["no"])):
		b = GraphBuilder()
		b.chain(BranchFlow(id="branch", condition=condition))
		b.add(PrintFlow(id="p_yes", text="yes"))
		b.add(PrintFlow(id="p_no",  text="no"))
		b.flow("branch", "p_yes", source_port="true")
		b.flow("branch", "p_no",  source_port="false")

		assert printed(run(b.graph)) == expected


def test_sequence_runs_each_output_to_completion_in_order():
	b = GraphBuilder()
	b.chain(SequenceFlow(id="seq", count=3))
	for i in (1, 2, 3):
		b.add(PrintFlow(id=f"p_{i}a", text=f"{i}a"))
		b.add(PrintFlow(id=f"p_{i}b", text=f"{i}b"))
		b.flow("seq", f"p_{i}a", source_port=f"out{i}")
		b.flow(f"p_{i}a", f"p_{i}b")

	assert printed(run(b.graph)) == ["1a", "1b", "2a", "2b", "3a", "3b"]


def test_fan_out_follows_connection_order():
	b = GraphBuilder()
	b.chain(PrintFlow(id="p_first", text="first"))
	b.add(PrintFlow(id="p_left",  text="left"))
	b.add(PrintFlow(id="p_right", text="right"))
	b.flow("p_first", "p_left")
	b.flow("p_first", "p_right")

	assert printed(run(b.graph)) == ["first", "left", "right"]


def test_gate_latch():
	b = GraphBuilder()
	b.chain(SequenceFlow(id="seq", count=4))
	b.add(GateFlow(id="gate", open=False))
	b.add(PrintFlow(id="p_pass", text="passed"))
	b.flow("gate", "p_pass")
	b.flow("seq", "gate", source_port="out1", target_port="flow_in")
	b.flow("seq", "gate", source_port="out2", target_port="toggle_in")
	b.flow("seq", "gate", source_port="out3", target_port="flow_in")
	b.flow("seq", "gate", source_port="out4", target_port="close_in")

	state = run(b.graph)

	assert printed(state) == ["passed"]


def test_for_loop_binds_index_before_body():
	b = GraphBuilder()
	b.var("items", DataType.ARRAY)
	b.chain(ForLoopFlow(id="loop", start=2, end=6))
	b.add(ArrayPushFlow(id="push", variable="items"))
	b.data("loop", "index", "push", "value")
	b.flow("loop", "push", source_port="loop")

	state = run(b.graph)

	assert state.variables["items"] == [2, 3, 4, 5]


def test_for_loop_range_is_capped_at_iteration_limit():
	b = GraphBuilder()
	b.var("items", DataType.ARRAY)
	b.chain(ForLoopFlow(id="loop", start=0, end=5000))
	b.add(ArrayPushFlow(id="push", variable="items"))
	b.data("loop", "index", "push", "value")
	b.flow("loop", "push", source_port="loop")

	state = run(b.graph)

	assert state.status == ExecutionStatus.COMPLETED
	assert len(state.variables["items"]) == 1000
	assert state.variables["items"][-1] == 999
	assert any("capped at 1000" in log["message"] for log in state.logs)


def test_array_flow_nodes():
	b = GraphBuilder()
	b.var("arr", DataType.ARRAY, [1, 2])
	b.var("last", DataType.INTEGER)
	b.chain(
		ArrayPushFlow(id="push", variable="arr", value=3),
		ArrayPopFlow(id="pop", variable="arr"),
		SetVariableFlow(id="keep", variable="last"),
		ArraySetFlow(id="set", variable="arr", index=4, value=9),
	)
	b.data("pop", "value", "keep", "value")

	state = run(b.graph)

	assert state.variables["last"] == 3
	assert state.variables["arr"] == [1, 2, None, None, 9]


def test_wait_for_condition_takes_timed_out_edge():
	b = GraphBuilder()
	b.chain(WaitForConditionFlow(id="wait", condition=False, poll_interval_ms=5, timeout_ms=30))
	b.add(PrintFlow(id="p_next", text="next"))
	b.add(PrintFlow(id="p_late", text="late"))
	b.flow("wait", "p_late", source_port="timed_out")

	assert printed(run(b.graph)) == ["late"]


def test_wait_for_condition_passes_when_satisfied():
	b = GraphBuilder()
	b.chain(WaitForConditionFlow(id="wait", condition=True, timeout_ms=30), PrintFlow(id="p_next", text="next"))

	assert printed(run(b.graph)) == ["next"]


def test_cancel_while_waiting_for_condition_fires_no_edge():
	b = GraphBuilder()
	b.chain(WaitForConditionFlow(id="wait", condition=False, poll_interval_ms=5, timeout_ms=0), PrintFlow(id="p_next", text="next"))
	b.add(PrintFlow(id="p_late", text="late"))
	b.flow("wait", "p_late", source_port="timed_out")

	async def scenario():
		engine       = ExecutionEngine(backend=make_backend())
		execution_id = await engine.start_execution(b.graph, options=fast_options())
		await asyncio.sleep(0.05)
		await engine.cancel_execution(execution_id)
		return await engine.wait_execution(execution_id, timeout=1.0)

	state = asyncio.run(scenario())

	assert state.status == ExecutionStatus.CANCELLED
	assert printed(state) == []
	assert not any("before timeout" in log["message"] for log in state.logs)


def test_cancel_during_while_loop_stops_the_run():
	b = GraphBuilder()
	b.chain(WhileLoopFlow(id="loop", condition=True))
	b.add(DelayFlow(id="nap", duration_ms=10))
	b.flow("loop", "nap", source_port="loop")
	b.add(PrintFlow(id="p_after", text="after"))
	b.flow("loop", "p_after", source_port="done")

	async def scenario():
		engine       = ExecutionEngine(backend=make_backend())
		execution_id = await engine.start_execution(b.graph, options=fast_options())
		await asyncio.sleep(0.05)
		await engine.cancel_execution(execution_id)
		return await engine.wait_execution(execution_id, timeout=1.0)

	state = asyncio.run(scenario())

	assert state.status == ExecutionStatus.CANCELLED
	assert printed(state) == []


def test_for_loop_async_waits_for_continue():
	b = GraphBuilder()
	b.chain(ForLoopAsyncFlow(id="loop", start=0, end=3))
	b.add(PrintFlow(id="p_body"))
	b.data("loop", "index", "p_body", "text")
	b.flow("loop", "p_body", source_port="loop")
	b.add(PrintFlow(id="p_done", text="done"))
	b.flow("loop", "p_done", source_port="done")

	async def scenario():
		engine       = ExecutionEngine(backend=make_backend())
		execution_id = await engine.start_execution(b.graph, options=fast_options())
		context      = engine.contexts[execution_id]
		body         = lambda: [log for log in context.logs if log["node_id"] == "p_body"]
		for count in (1, 2):
			await until(lambda: len(body()) == count)
			await asyncio.sleep(0.02)
			assert len(body()) == count
			assert engine.get_execution_state(execution_id).status == ExecutionStatus.RUNNING
			assert await engine.continue_loop(execution_id, "loop")
		return await engine.wait_execution(execution_id, timeout=1.0)

	state = asyncio.run(scenario())

	assert state.status == ExecutionStatus.COMPLETED
	assert printed(state) == ["0", "1", "2", "done"]


def test_continue_in_flow_input_steps_the_loop():
	b = GraphBuilder()
	b.chain(ForLoopAsyncFlow(id="loop", start=0, end=2))
	b.add(PrintFlow(id="p_body"))
	b.data("loop", "index", "p_body", "text")
	b.flow("loop", "p_body", source_port="loop")
	b.add(DelayFlow(id="nap", duration_ms=1))
	b.flow("p_body", "nap")
	b.flow("nap", "loop", target_port="continue_in")

	state = run(b.graph)

	assert state.status == ExecutionStatus.COMPLETED
	assert printed(state) == ["0", "1"]


def test_runaway_flow_cycle_fails_the_run():
	b = GraphBuilder()
	b.chain(PrintFlow(id="p_a", text="a"), PrintFlow(id="p_b", text="b"))
	b.flow("p_b", "p_a")

	state = run(b.graph, max_steps=50)

	assert state.status == ExecutionStatus.FAILED
	assert "50 flow steps" in state.error


def test_set_variable_result_is_coerced():
	b = GraphBuilder()
	b.var("count", DataType.INTEGER)
	b.chain(SetVariableFlow(id="set", variable="count"))
	b.add(ConstantNode(id="c", value="12"))
	b.data("c", "out", "set", "value")
	b.chain(PrintFlow(id="p_result"))
	b.data("set", "result", "p_result", "text")

	state = run(b.graph)

	assert state.variables["count"] == 12
	assert printed(state) == ["12"]


def test_random_is_drawn_once_per_run():
	b = GraphBuilder()
	b.var("a", DataType.FLOAT)
	b.var("b", DataType.FLOAT)
	b.chain(SetVariableFlow(id="set_a", variable="a"), SetVariableFlow(id="set_b", variable="b"))
	b.add(RandomNode(id="r", min=0, max=1000))
	b.data("r", "out", "set_a", "value")
	b.data("r", "out", "set_b", "value")

	state = run(b.graph)

	assert state.status == ExecutionStatus.COMPLETED
	assert 0 <= state.variables["a"] < 1000
	assert state.variables["a"] == state.variables["b"]
