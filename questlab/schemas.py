"""Quest catalog schemas.

The catalog maps each quest name to the ordered list of nodes the quest
needs::

    {
        "hello_puppet": [
            {"name": "hello.puppet.vm", "image": "agent", "sign_cert": true}
        ]
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, RootModel, ValidationError, field_validator

from questlab.errors import CatalogError, QuestNotFound

logger = logging.getLogger(__name__)


class NodeOptions(BaseModel):
    """One node required by a quest."""
    name: str  # Container hostname and Puppet certname
    image: str
    sign_cert: bool = False
    run_puppet: bool = False


class QuestCatalog(RootModel[dict[str, list[NodeOptions]]]):
    """Quest name -> ordered node list."""

    @field_validator("root")
    @classmethod
    def _unique_node_names(
        cls, quests: dict[str, list[NodeOptions]]
    ) -> dict[str, list[NodeOptions]]:
        for quest, nodes in quests.items():
            seen: set[str] = set()
            for node in nodes:
                if node.name in seen:
                    raise ValueError(f"Quest {quest} lists node {node.name} more than once")
                seen.add(node.name)
        return quests

    def quests(self) -> list[str]:
        return sorted(self.root)

    def nodes_for(self, quest: str) -> list[NodeOptions]:
        """Get the nodes for a quest, in catalog order.

        Raises:
            QuestNotFound: If the quest is not in the catalog
        """
        try:
            return list(self.root[quest])
        except KeyError:
            raise QuestNotFound(quest) from None


def load_quest_catalog(path: str | Path) -> QuestCatalog:
    """Read and validate a quest catalog file.

    Files ending in .yml or .yaml are parsed as YAML, anything else as JSON.

    Raises:
        CatalogError: If the file is missing, unparseable or invalid
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"Cannot read quest catalog {path}: {e}") from e

    try:
        if path.suffix.lower() in (".yml", ".yaml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise CatalogError(f"Cannot parse quest catalog {path}: {e}") from e

    if data is None:
        data = {}

    try:
        catalog = QuestCatalog.model_validate(data)
    except ValidationError as e:
        raise CatalogError(f"Invalid quest catalog {path}: {e}") from e

    logger.debug(f"Loaded {len(catalog.root)} quests from {path}")
    return catalog
