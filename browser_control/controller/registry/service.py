import logging
from collections.abc import Callable
from inspect import iscoroutinefunction, signature
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from browser_control.browser.views import NonRetryableError
from browser_control.controller.registry.views import ActionRegistry, RegisteredAction
from browser_control.controller.views import NoParamsAction
from browser_control.utils import time_execution_async

logger = logging.getLogger(__name__)

Context = TypeVar('Context')

# Injected by name into action functions that declare them
SPECIAL_PARAMS = ('executor', 'context')


class Registry(Generic[Context]):
	"""Service for registering and managing actions"""

	def __init__(self, exclude_actions: list[str] | None = None):
		self.registry = ActionRegistry()
		self.exclude_actions = exclude_actions if exclude_actions is not None else []

	def _validate_action_function(self, func: Callable, param_model: type[BaseModel] | None) -> type[BaseModel]:
		"""Check the function can be called as `func(params=..., **special)` and return its param model."""
		if not iscoroutinefunction(func):
			raise ValueError(f'Action {func.__name__} must be an async function')

		sig = signature(func)
		unknown = [name for name in sig.parameters if name != 'params' and name not in SPECIAL_PARAMS]
		if unknown:
			raise ValueError(f'Action {func.__name__} has unsupported parameters {unknown}; allowed: params, {", ".join(SPECIAL_PARAMS)}')

		if param_model is None:
			annotation = sig.parameters['params'].annotation if 'params' in sig.parameters else None
			param_model = annotation if isinstance(annotation, type) and issubclass(annotation, BaseModel) else NoParamsAction
		return param_model

	def action(
		self,
		description: str,
		param_model: type[BaseModel] | None = None,
		aliases: list[str] | None = None,
	):
		"""Decorator for registering actions"""

		def decorator(func: Callable):
			# Skip registration if action is in exclude_actions
			if func.__name__ in self.exclude_actions:
				return func

			actual_param_model = self._validate_action_function(func, param_model)
			names = [func.__name__, *(aliases or [])]
			taken = [name for name in names if name in self.registry.actions or name in self.registry.aliases]
			if taken:
				raise ValueError(f'Action name(s) already registered: {taken}')

			action = RegisteredAction(
				name=func.__name__,
				description=description,
				function=func,
				param_model=actual_param_model,
				aliases=list(aliases or []),
			)
			self.registry.actions[func.__name__] = action
			for alias in action.aliases:
				self.registry.aliases[alias] = func.__name__

			return func

		return decorator

	def get_action(self, name: str) -> RegisteredAction | None:
		"""Look up by name or alias"""
		return self.registry.resolve(name)

	@property
	def action_names(self) -> list[str]:
		return list(self.registry.actions)

	@time_execution_async('--execute_action')
	async def execute_action(
		self,
		action_name: str,
		params: dict[str, Any],
		executor: Any = None,
		context: Context | None = None,
	) -> Any:
		"""Validate `params` against the action's model and call it.

		Invalid parameters raise NonRetryableError: the same call can never succeed.
		"""
		action = self.get_action(action_name)
		if action is None:
			raise ValueError(f'Action {action_name} not found')

		try:
			validated_params = action.param_model(**(params or {}))
		except ValidationError as e:
			raise NonRetryableError(f'Invalid parameters {params} for action {action.name}: {e}') from e

		special_context = {'executor': executor, 'context': context}
		sig = signature(action.function)
		kwargs = {name: value for name, value in special_context.items() if name in sig.parameters}
		if 'params' in sig.parameters:
			kwargs['params'] = validated_params

		return await action.function(**kwargs)
