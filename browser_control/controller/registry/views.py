from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field


class RegisteredAction(BaseModel):
	"""Model for a registered action"""

	name: str
	description: str
	function: Callable
	param_model: type[BaseModel]
	aliases: list[str] = Field(default_factory=list)

	model_config = ConfigDict(arbitrary_types_allowed=True)


class ActionRegistry(BaseModel):
	"""Model representing the action registry"""

	actions: dict[str, RegisteredAction] = {}
	aliases: dict[str, str] = {}

	def resolve(self, name: str) -> RegisteredAction | None:
		return self.actions.get(self.aliases.get(name, name))
