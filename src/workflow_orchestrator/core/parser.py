"""
工作流定义解析器
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from jsonschema import Draft7Validator

from ..exceptions import WorkflowParseError
from ..models.workflow import (
    Activity,
    ActivityType,
    PortType,
    ReminderPolicy,
    Transition,
    VariableDefinition,
    VariableType,
    WorkflowDefinition,
)


logger = logging.getLogger(__name__)


_TIMEOUT_SCHEMA = {
    "type": "object",
    "properties": {
        "interval": {"type": "integer", "minimum": 0},
        "uom": {"type": "string"},
    },
    "additionalProperties": False,
}

WORKFLOW_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["id", "activities"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "description": {"type": ["string", "null"]},
        "primary_entity": {"type": "string"},
        "primary_key_field": {"type": "string"},
        "disabled": {"type": "boolean"},
        "reminder": _TIMEOUT_SCHEMA,
        "variables": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "name": {"type": "string"},
                    "type": {"type": "string"},
                    "default": {"type": ["string", "number", "null"]},
                    "description": {"type": ["string", "null"]},
                },
            },
        },
        "activities": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["id", "type"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "type": {"type": "string"},
                    "name": {"type": ["string", "null"]},
                    "config": {"type": "object"},
                    "timeout": _TIMEOUT_SCHEMA,
                },
            },
        },
        "transitions": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["from", "to"],
                "properties": {
                    "id": {"type": "string"},
                    "from": {"type": "string"},
                    "to": {"type": "string"},
                    "port": {"type": "string"},
                    "to_port": {"type": "string"},
                },
            },
        },
    },
}


class WorkflowParser:
    """工作流定义解析器（YAML / JSON）"""

    def __init__(self):
        self.parsers = {
            'yaml': self._parse_yaml,
            'yml': self._parse_yaml,
            'json': self._parse_json
        }
        self.validator = Draft7Validator(WORKFLOW_SCHEMA)

    def parse(self, source: Union[str, Path, Dict[str, Any]]) -> WorkflowDefinition:
        """
        解析工作流定义

        Args:
            source: 文件路径、YAML/JSON 字符串或字典

        Returns:
            WorkflowDefinition: 解析后的工作流定义
        """
        if isinstance(source, dict):
            return self.parse_dict(source)

        if isinstance(source, Path) or (isinstance(source, str) and _is_file(source)):
            return self.parse_file(Path(source))

        if isinstance(source, str):
            return self.parse_string(source)

        raise WorkflowParseError(f"Unsupported source type: {type(source)}")

    def parse_file(self, file_path: Path) -> WorkflowDefinition:
        """解析工作流文件"""
        suffix = file_path.suffix.lower().lstrip('.')
        if suffix not in self.parsers:
            raise WorkflowParseError(f"Unsupported file format: {suffix}")

        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()

        return self.parse_dict(self.parsers[suffix](content))

    def parse_string(self, content: str) -> WorkflowDefinition:
        """解析 YAML（JSON 是其子集）字符串"""
        return self.parse_dict(self._parse_yaml(content))

    def parse_dict(self, data: Dict[str, Any]) -> WorkflowDefinition:
        """解析字典格式的工作流定义"""
        if not isinstance(data, dict):
            raise WorkflowParseError("Workflow definition must be a mapping")
        if 'workflow' in data:
            data = data['workflow']

        errors = sorted(self.validator.iter_errors(data), key=lambda e: list(e.path))
        if errors:
            messages = [
                f"{'.'.join(str(p) for p in error.path) or '<root>'}: {error.message}"
                for error in errors
            ]
            raise WorkflowParseError("Invalid workflow definition: " + "; ".join(messages))

        reminder = data.get('reminder') or {}
        workflow = WorkflowDefinition(
            id=data['id'],
            name=data.get('name', data['id']),
            description=data.get('description'),
            primary_entity=data.get('primary_entity', ''),
            primary_key_field=data.get('primary_key_field', 'id'),
            disabled=data.get('disabled', False),
            reminder=ReminderPolicy(interval=reminder.get('interval'), uom=reminder.get('uom')),
            variables=[self._parse_variable(item) for item in data.get('variables', [])],
            activities=[self._parse_activity(item) for item in data['activities']],
        )
        workflow.transitions = [
            self._parse_transition(item) for item in data.get('transitions', [])
        ]
        self._check_references(workflow)
        return workflow

    def to_dict(self, workflow: WorkflowDefinition) -> Dict[str, Any]:
        """将工作流定义序列化为文档格式"""
        activities = []
        for activity in workflow.activities:
            item = {"id": activity.id, "type": activity.type.value, "config": activity.config}
            if activity.name:
                item["name"] = activity.name
            if activity.timeout_interval is not None:
                item["timeout"] = {"interval": activity.timeout_interval}
                if activity.timeout_uom:
                    item["timeout"]["uom"] = activity.timeout_uom
            activities.append(item)

        document = {
            "id": workflow.id,
            "name": workflow.name,
            "description": workflow.description,
            "primary_entity": workflow.primary_entity,
            "primary_key_field": workflow.primary_key_field,
            "disabled": workflow.disabled,
            "variables": [
                {
                    "id": variable.id,
                    "name": variable.name,
                    "type": variable.type.value,
                    "default": variable.default_value,
                    "description": variable.description,
                }
                for variable in workflow.variables
            ],
            "activities": activities,
            "transitions": [
                {
                    "id": transition.id,
                    "from": transition.from_activity_id,
                    "to": transition.to_activity_id,
                    "port": transition.from_port.value,
                    "to_port": transition.to_port.value,
                }
                for transition in workflow.transitions
            ],
        }
        reminder = {
            key: value for key, value in
            (("interval", workflow.reminder.interval), ("uom", workflow.reminder.uom))
            if value is not None
        }
        if reminder:
            document["reminder"] = reminder
        return document

    def _parse_yaml(self, content: str) -> Dict[str, Any]:
        """解析YAML格式"""
        try:
            return yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise WorkflowParseError(f"Failed to parse YAML: {e}")

    def _parse_json(self, content: str) -> Dict[str, Any]:
        """解析JSON格式"""
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise WorkflowParseError(f"Failed to parse JSON: {e}")

    def _parse_variable(self, data: Dict[str, Any]) -> VariableDefinition:
        default = data.get('default')
        return VariableDefinition(
            id=data['id'],
            name=data.get('name', data['id']),
            type=self._enum(VariableType, data.get('type', 'text'), f"variable {data['id']}"),
            default_value=None if default is None else str(default),
            description=data.get('description'),
        )

    def _parse_activity(self, data: Dict[str, Any]) -> Activity:
        timeout = data.get('timeout') or {}
        return Activity(
            id=data['id'],
            type=self._enum(ActivityType, data['type'], f"activity {data['id']}"),
            name=data.get('name'),
            config=data.get('config') or {},
            timeout_interval=timeout.get('interval'),
            timeout_uom=timeout.get('uom'),
        )

    def _parse_transition(self, data: Dict[str, Any]) -> Transition:
        from_port = self._enum(PortType, data.get('port', 'success'), f"transition from {data['from']}")
        to_port = self._enum(PortType, data.get('to_port', 'input'), f"transition to {data['to']}")
        return Transition(
            id=data.get('id') or f"{data['from']}-{from_port.value}-{data['to']}",
            from_activity_id=data['from'],
            to_activity_id=data['to'],
            from_port=from_port,
            to_port=to_port,
        )

    def _enum(self, enum_cls, value: str, where: str):
        try:
            return enum_cls(str(value).lower())
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            raise WorkflowParseError(f"Invalid {enum_cls.__name__} '{value}' in {where} (expected one of: {allowed})")

    def _check_references(self, workflow: WorkflowDefinition):
        """检查ID唯一性与转移引用"""
        activity_ids = [activity.id for activity in workflow.activities]
        duplicates = {activity_id for activity_id in activity_ids if activity_ids.count(activity_id) > 1}
        if duplicates:
            raise WorkflowParseError(f"Duplicate activity IDs: {sorted(duplicates)}")

        for transition in workflow.transitions:
            for activity_id in (transition.from_activity_id, transition.to_activity_id):
                if activity_id not in activity_ids:
                    raise WorkflowParseError(
                        f"Transition {transition.id} references unknown activity '{activity_id}'"
                    )


def _is_file(source: str) -> bool:
    """判断字符串是否为已存在的文件路径"""
    if "\n" in source:
        return False
    try:
        return Path(source).is_file()
    except OSError:
        return False
