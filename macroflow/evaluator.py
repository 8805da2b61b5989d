# evaluator

import copy


from   typing     import Any, Dict, Optional


from   .context   import ExecutionContext
from   .event_bus import LogLevel
from   .nodes     import NodeExecutionContext, NodeExecutionResult
from   .schema    import BaseType, Port
from   .values    import DataType, Number, coerce, to_number


def _field_default(node: BaseType, name: str) -> Any:
	"""Typed default of an unconnected input: the node's own field value"""
	if name not in type(node).model_fields:
		return None
	return copy.deepcopy(getattr(node, name))


def resolve_input(node: BaseType, port: Port, value: Any) -> Any:
	"""Fill in the default for an absent value, then coerce it to the port kind"""
	if value is None:
		value = _field_default(node, port.name)
	if value is None:
		return None
	info = type(node).model_fields.get(port.name)
	if info is not None and info.annotation == Number:
		return to_number(value)
	if port.data_type is None or port.data_type == DataType.EXECUTION_FLOW:
		return value
	return coerce(value, port.data_type)


class ValueEvaluator:
	"""
	Pull-based resolution of output port values.

	Value-node results are memoized in the execution context for the current
	epoch, so every (node_id, port) is computed at most once between two state
	mutations. Pinned executors (Random) keep their first result for the whole
	run. Flow-node outputs are never computed here: they are read from
	what the flow executor stored, or absent when the node has not run yet.
	"""

	async def evaluate_input(self, node_id: str, port: str, context: ExecutionContext, depth: int = 0) -> Any:
		"""Value arriving at a data input, after defaulting and coercion"""
		node = context.index.node(node_id)
		if node is None:
			return None
		port_info = context.index.ports[node_id].input(port)
		if port_info is None:
			return None
		connection = context.index.data_source(node_id, port)
		value      = None
		if connection is not None:
			value = await self.evaluate_output(connection.source, connection.source_port, context, depth + 1)
		return resolve_input(node, port_info, value)


	async def gather_inputs(self, node_id: str, context: ExecutionContext, depth: int = 0) -> Dict[str, Any]:
		"""Current values of every data input of a node"""
		inputs = {}
		node   = context.index.node(node_id)
		for port in context.index.ports[node_id].inputs:
			if port.data_type == DataType.EXECUTION_FLOW:
				continue
			connection = context.index.data_source(node_id, port.name)
			value      = None
			if connection is not None:
				value = await self.evaluate_output(connection.source, connection.source_port, context, depth + 1)
			inputs[port.name] = resolve_input(node, port, value)
		return inputs


	async def evaluate_output(self, node_id: str, port: str, context: ExecutionContext, depth: int = 0) -> Optional[Any]:
		"""Value of a node output, or None when it cannot be produced"""
		limit = context.options.max_eval_depth
		if depth > limit:
			await context.log(f"Cycle detected while evaluating '{port}': depth limit of {limit} exceeded", LogLevel.ERROR, node_id)
			return None

		found, value = context.lookup(node_id, port)
		if found:
			return value

		executor = context.executors.get(node_id)
		if executor is None or executor.is_flow:
			return None

		node = context.index.node(node_id)

		node_context = NodeExecutionContext()
		node_context.inputs      = await self.gather_inputs(node_id, context, depth)
		node_context.variables   = context.variables
		node_context.node_index  = node_id
		node_context.node_config = node
		node_context.backend     = context.backend
		node_context.run         = context
		node_context.evaluator   = self
		node_context.depth       = depth

		try:
			result = await executor.execute(node_context)
		except Exception as e:
			result = NodeExecutionResult()
			result.success = False
			result.error   = str(e)

		if not result.success:
			await context.log(result.error or "Evaluation failed", LogLevel.ERROR, node_id)

		pinned = executor.pinned and result.success
		for name, output in result.outputs.items():
			context.store_value(node_id, name, output, pinned)
		if port not in result.outputs:
			context.store_value(node_id, port, None, pinned)

		return result.outputs.get(port)
