import asyncio

from   conftest            import fast_options, make_backend

from   macroflow.context   import ExecutionContext
from   macroflow.evaluator import ValueEvaluator
from   macroflow.registry  import create_node
from   macroflow.schema    import (
	AddNode, ArrayGetNode, ConstantNode, DivideNode, ExtractUntilNode, FormatNode,
	GetVariableNode, Graph, JsonParseNode, LessThanNode, RandomNode, SetVariableFlow,
	StringBetweenNode, StringJoinNode, Variable,
)
from   macroflow.values    import DataType


def make_context(graph: Graph, **options) -> ExecutionContext:
	context = ExecutionContext(graph, options=fast_options(**options), backend=make_backend())
	context.executors = {n.id: create_node(n, context.backend) for n in graph.nodes}
	return context


def evaluate(context: ExecutionContext, node_id: str, port: str):
	return asyncio.run(ValueEvaluator().evaluate_output(node_id, port, context))


def test_random_is_evaluated_once_per_epoch():
	graph = Graph(nodes=[RandomNode(id="r", min=0, max=1000), AddNode(id="sum")])
	graph.connect("r", "out", "sum", "a")
	graph.connect("r", "out", "sum", "b")
	context = make_context(graph)

	async def scenario():
		evaluator = ValueEvaluator()
		total = await evaluator.evaluate_output("sum", "out", context)
		first = await evaluator.evaluate_output("r", "out", context)
		again = await evaluator.evaluate_output("r", "out", context)
		return total, first, again

	total, first, again = asyncio.run(scenario())
	assert first == again
	assert total == first * 2


def test_unconnected_inputs_use_typed_defaults():
	graph = Graph(nodes=[DivideNode(id="d", a=9)])
	assert evaluate(make_context(graph), "d", "out") == 9


def test_divide_by_connected_zero():
	graph = Graph(nodes=[ConstantNode(id="zero", value=0), DivideNode(id="d", a=12)])
	graph.connect("zero", "out", "d", "b")
	assert evaluate(make_context(graph), "d", "out") == 12


def test_cycle_is_reported_and_evaluation_continues():
	graph = Graph(nodes=[AddNode(id="a1", b=1), AddNode(id="a2", b=1)])
	graph.connect("a2", "out", "a1", "a")
	graph.connect("a1", "out", "a2", "a")
	context = make_context(graph, max_eval_depth=16)

	value = evaluate(context, "a1", "out")

	assert isinstance(value, int)
	errors = [log for log in context.logs if log["level"] == "error"]
	assert errors
	assert "Cycle detected" in errors[0]["message"]


def test_variable_reads_follow_writes():
	graph = Graph(
		nodes     = [GetVariableNode(id="get", variable="x"), LessThanNode(id="lt", b=3)],
		variables = [Variable(name="x", data_type=DataType.INTEGER, default=1)],
	)
	graph.connect("get", "value", "lt", "a")
	context = make_context(graph)

	assert evaluate(context, "lt", "out") is True
	context.set_variable("x", "5")
	assert context.get_variable("x") == 5
	assert evaluate(context, "lt", "out") is False


def test_flow_node_outputs_come_from_the_store():
	graph = Graph(
		nodes     = [SetVariableFlow(id="set", variable="x"), AddNode(id="add", b=1)],
		variables = [Variable(name="x", data_type=DataType.INTEGER)],
	)
	graph.connect("set", "result", "add", "a")
	context = make_context(graph)

	assert evaluate(context, "set", "result") is None
	assert evaluate(context, "add", "out") == 1

	context.store_outputs("set", {"result": 41})
	assert evaluate(context, "add", "out") == 42


def test_string_join_skips_unconnected_inputs():
	graph = Graph(nodes=[
		ConstantNode(id="c0", value="a"),
		ConstantNode(id="c2", value=3),
		StringJoinNode(id="join", count=3, separator="-"),
	])
	graph.connect("c0", "out", "join", "in0")
	graph.connect("c2", "out", "join", "in2")
	assert evaluate(make_context(graph), "join", "out") == "a-3"


def test_string_nodes():
	graph = Graph(nodes=[
		FormatNode(id="fmt", template="Hi {}, {}", arg0="Bo"),
		StringBetweenNode(id="between", source="<a>x</a>", before="<a>", after="</a>"),
		ExtractUntilNode(id="until", source="key=value;rest", keyword="key=", delimiter=";"),
	])
	context = make_context(graph)
	assert evaluate(context, "fmt", "out") == "Hi Bo, {}"
	assert evaluate(context, "between", "out") == "x"
	assert evaluate(context, "until", "result") == "value"
	assert evaluate(context, "until", "found") is True


def test_array_and_json_nodes():
	graph = Graph(nodes=[
		JsonParseNode(id="parse", text='[1, {"a": 2}, "s"]'),
		ArrayGetNode(id="get"),
		ArrayGetNode(id="chars", array="hey", index=1),
		JsonParseNode(id="bad", text="{nope"),
	])
	graph.connect("parse", "value", "get", "array")
	context = make_context(graph)

	assert evaluate(context, "parse", "value") == [1, '{"a": 2}', "s"]
	assert evaluate(context, "get", "value") == 1
	assert evaluate(context, "chars", "value") == "e"
	assert evaluate(context, "bad", "success") is False
