"""
Prompt Templates

Profiles declare prompts in server.yaml; each prompt body is a Jinja2
template under the profile's prompts/ directory:

    prompts:
      - name: add_component
        description: Add a new UI component to the template
        title: "Adding {{ component_type | default('component') }} to CRM template"
        template: add-component.md.j2
        arguments:
          - name: component_type
            description: Type of component to add
            required: true
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from pattern_errors import ConfigError, InvalidArgumentsError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptArgument:
    name: str
    description: str = ""
    required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "required": self.required}


@dataclass(frozen=True)
class PromptDefinition:
    name: str
    template: str
    description: str = ""
    title: Optional[str] = None
    arguments: List[PromptArgument] = field(default_factory=list)

    @classmethod
    def from_config(cls, spec: Dict[str, Any]) -> "PromptDefinition":
        if not spec.get("name") or not spec.get("template"):
            raise ConfigError(f"Prompt definitions need a name and a template: {spec}")
        arguments = [
            PromptArgument(
                name=arg["name"],
                description=arg.get("description", ""),
                required=bool(arg.get("required", False)),
            )
            for arg in spec.get("arguments") or []
        ]
        return cls(
            name=spec["name"],
            template=spec["template"],
            description=spec.get("description", ""),
            title=spec.get("title"),
            arguments=arguments,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [arg.to_dict() for arg in self.arguments],
        }


class PromptRegistry:
    """Renders the profile's prompt templates."""

    def __init__(self, definitions: Optional[List[PromptDefinition]] = None, templates_dir: Optional[Path] = None):
        self._definitions: Dict[str, PromptDefinition] = {d.name: d for d in definitions or []}
        search_path = [str(templates_dir)] if templates_dir is not None else []
        self.env = Environment(
            loader=FileSystemLoader(search_path),
            autoescape=select_autoescape(['html', 'xml'], default_for_string=False),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    @classmethod
    def from_config(cls, specs: List[Dict[str, Any]], templates_dir: Path) -> "PromptRegistry":
        return cls([PromptDefinition.from_config(spec) for spec in specs], templates_dir)

    def list(self) -> List[PromptDefinition]:
        return list(self._definitions.values())

    def names(self) -> List[str]:
        return list(self._definitions.keys())

    def get(self, name: str) -> PromptDefinition:
        definition = self._definitions.get(name)
        if definition is None:
            raise NotFoundError("prompt", name, self.names())
        return definition

    def render(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Render a prompt.

        Args:
            name: Prompt name
            arguments: Values for the prompt's declared arguments

        Returns:
            Dict with description and a single user message

        Raises:
            NotFoundError: unknown prompt
            InvalidArgumentsError: a required argument is missing
        """
        definition = self.get(name)
        arguments = {k: v for k, v in (arguments or {}).items() if v not in (None, "")}

        missing = [a.name for a in definition.arguments if a.required and a.name not in arguments]
        if missing:
            raise InvalidArgumentsError(name, f"missing required argument(s): {', '.join(missing)}")

        try:
            text = self.env.get_template(definition.template).render(**arguments)
            description = (
                self.env.from_string(definition.title).render(**arguments)
                if definition.title else definition.description
            )
        except TemplateError as e:
            logger.error(f"Error rendering prompt '{name}': {e}")
            raise

        return {
            "description": description,
            "messages": [
                {"role": "user", "content": {"type": "text", "text": text.strip()}},
            ],
        }
