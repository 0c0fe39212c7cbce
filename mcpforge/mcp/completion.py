"""Argument completion for completion/complete."""

from abc import ABC, abstractmethod
from typing import Any

from mcpforge.mcp.errors import ErrorKind, Failure, Outcome, Success
from mcpforge.mcp.invoker import MethodInvoker
from mcpforge.mcp.models import CompleteResult, Completion, CompletionArgument, CompletionReference
from mcpforge.mcp.registry import CapabilityKind, CapabilityRegistry

MAX_COMPLETION_VALUES = 100


class CompletionProvider(ABC):
    """Supplies completion values for prompt arguments and resource URIs."""

    @abstractmethod
    async def complete(
        self, ref: CompletionReference, argument: CompletionArgument
    ) -> Outcome:
        """Succeed with a CompleteResult, or fail with a typed Failure."""


class RegistryCompletionProvider(CompletionProvider):
    """
    Completes from what the registry already knows.

    ``ref/resource``: values from the template's ``completer`` when the
    reference names a registered template, otherwise the registered resource
    URIs containing the typed value. ``ref/prompt``: the prompt parameter's
    ``choices`` starting with the typed value.
    """

    def __init__(self, registry: CapabilityRegistry, invoker: MethodInvoker):
        self.registry = registry
        self.invoker = invoker

    async def complete(
        self, ref: CompletionReference, argument: CompletionArgument
    ) -> Outcome:
        if ref.type == "ref/resource":
            values = await self._resource_values(ref.uri or "", argument)
            if not values.ok:
                return values
            return Success(_result(values.value))
        if ref.type == "ref/prompt":
            return self._prompt_values(ref.name or "", argument)
        return Failure(
            ErrorKind.INVALID_PARAMS, f"Invalid completion reference type: {ref.type}"
        )

    async def _resource_values(self, uri: str, argument: CompletionArgument) -> Outcome:
        template = self.registry.lookup_exact(CapabilityKind.RESOURCE_TEMPLATE, uri)
        if template is not None:
            if template.completer is None:
                return Success([])
            outcome = await self.invoker.invoke(
                template.completer, [argument.name, argument.value]
            )
            if not outcome.ok:
                return outcome
            return Success([str(value) for value in outcome.value or ()])

        needle = argument.value.lower()
        return Success(
            [
                resource.uri
                for resource in self.registry.values(CapabilityKind.RESOURCE)
                if needle in resource.uri.lower()
            ]
        )

    def _prompt_values(self, name: str, argument: CompletionArgument) -> Outcome:
        prompt: Any = self.registry.lookup_exact(CapabilityKind.PROMPT, name)
        if prompt is None:
            prompt = self.registry.lookup_exact(CapabilityKind.PROMPT_TEMPLATE, name)
        if prompt is None:
            return Failure(ErrorKind.METHOD_NOT_FOUND, f"Prompt not found: {name}")

        param = next((p for p in prompt.params if p.name == argument.name), None)
        if param is None:
            return Success(_result([]))
        prefix = argument.value.lower()
        return Success(_result([c for c in param.choices if c.lower().startswith(prefix)]))


def _result(values: list[str]) -> CompleteResult:
    return CompleteResult(
        completion=Completion(
            values=values[:MAX_COMPLETION_VALUES],
            total=len(values),
            hasMore=len(values) > MAX_COMPLETION_VALUES,
        )
    )
