"""Serializes a raw accessibility tree into the indented UID text document."""

import re
from collections.abc import Callable
from typing import Any

from browser_control.dom.accessibility.filter import (
	BOOLEAN_CAPABILITIES,
	EXCLUDED_PROPERTIES,
	FilteringStats,
	ax_value,
	is_interesting,
	property_map,
)

_SAFE_TOKEN = re.compile(r'[\w-]+', re.ASCII)

INDENT = '  '


def stringify(value: Any) -> str:
	if isinstance(value, bool):
		return 'true' if value else 'false'
	if isinstance(value, float) and value.is_integer():
		return str(int(value))
	return str(value)


def escape_token(value: Any) -> str:
	"""Quote a token unless it is made only of `[A-Za-z0-9_-]`."""
	text = stringify(value)
	if _SAFE_TOKEN.fullmatch(text):
		return text
	return '"' + text.replace('"', '\\"').replace('\n', '\\n') + '"'


def find_root(nodes: list[dict[str, Any]]) -> dict[str, Any] | None:
	"""First node that is not listed as a child of any other node."""
	child_ids = {child_id for node in nodes for child_id in node.get('childIds') or []}
	for node in nodes:
		if node.get('nodeId') not in child_ids:
			return node
	return None


class AXTreeSerializer:
	"""One serialization pass over a fetched tree.

	`uid_for(node)` is called once per printed node, in document order, and returns the
	UID to print for it.
	"""

	def __init__(self, nodes: list[dict[str, Any]], uid_for: Callable[[dict[str, Any]], str], verbose: bool = False):
		self.nodes = nodes
		self.uid_for = uid_for
		self.verbose = verbose
		self.stats = FilteringStats()

		self._by_id: dict[Any, dict[str, Any]] = {}
		for node in nodes:
			self._by_id.setdefault(node.get('nodeId'), node)

	def serialize(self) -> str | None:
		"""Return the document, or None when the tree has no root."""
		root = find_root(self.nodes)
		if root is None:
			return None

		lines: list[str] = []
		seen: set[Any] = set()
		stack: list[tuple[dict[str, Any], int]] = [(root, 0)]

		while stack:
			node, depth = stack.pop()
			node_id = node.get('nodeId')
			if node_id in seen:
				continue
			seen.add(node_id)
			self.stats.total_nodes += 1

			should_print = self.verbose or is_interesting(node)
			if should_print:
				self.stats.printed_nodes += 1
				if node.get('ignored'):
					self.stats.ignored_nodes += 1
				lines.append(INDENT * depth + self.format_node(node))
			else:
				self.stats.pruned_nodes += 1

			# skipped nodes hand their children the current depth
			next_depth = depth + 1 if should_print else depth
			children = [self._by_id[child_id] for child_id in node.get('childIds') or [] if child_id in self._by_id]
			for child in reversed(children):
				stack.append((child, next_depth))

		return ''.join(line + '\n' for line in lines)

	def format_node(self, node: dict[str, Any]) -> str:
		uid = self.uid_for(node)

		role = 'ignored' if node.get('ignored') else ax_value(node.get('role'))
		name = ax_value(node.get('name'))
		value = ax_value(node.get('value'))
		description = ax_value(node.get('description'))

		# options without a value attribute are selected by their text
		if role == 'option' and not value and name:
			value = name

		parts = [f'uid={uid}']
		if node.get('frameId'):
			parts.append(f'frameId={node["frameId"]}')
		if role:
			parts.append(str(role))
		if name:
			parts.append(escape_token(name))
		if value:
			parts.append(f'value={escape_token(value)}')
		if description:
			parts.append(f'desc={escape_token(description)}')

		props = property_map(node)
		for key in sorted(props):
			if key in EXCLUDED_PROPERTIES:
				continue
			prop_value = props[key]
			if isinstance(prop_value, bool):
				if key in BOOLEAN_CAPABILITIES:
					parts.append(BOOLEAN_CAPABILITIES[key])
				if prop_value:
					parts.append(key)
			elif prop_value is not None and prop_value != '':
				parts.append(f'{key}={escape_token(prop_value)}')

		return ' '.join(parts)
