"""
工作流编排引擎异常定义
"""


class WorkflowEngineError(Exception):
    """工作流引擎基础异常"""
    pass


class WorkflowParseError(WorkflowEngineError):
    """工作流定义解析异常"""
    pass


class WorkflowValidationError(WorkflowEngineError):
    """校验异常（调用方输入或实例状态不合法）"""
    pass


class WorkflowNotFoundError(WorkflowValidationError):
    """工作流定义不存在"""
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")


class WorkflowDisabledError(WorkflowValidationError):
    """工作流已禁用"""
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' is disabled")


class InstanceNotFoundError(WorkflowValidationError):
    """工作流实例不存在"""
    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Workflow instance '{instance_id}' not found")


class InstanceStateError(WorkflowValidationError):
    """实例状态不允许当前操作"""
    def __init__(self, instance_id: str, current_state: str, operation: str):
        self.instance_id = instance_id
        self.current_state = current_state
        self.operation = operation
        super().__init__(
            f"Cannot {operation} workflow instance '{instance_id}' in state '{current_state}'"
        )


class DuplicateInstanceError(WorkflowValidationError):
    """同一记录已存在未结束的实例"""
    def __init__(self, workflow_id: str, primary_key_value: str, instance_id: str):
        self.workflow_id = workflow_id
        self.primary_key_value = primary_key_value
        self.instance_id = instance_id
        super().__init__(
            f"Workflow '{workflow_id}' already has open instance '{instance_id}' "
            f"for record '{primary_key_value}'"
        )


class EntityNotFoundError(WorkflowValidationError):
    """被跟踪的业务记录不存在"""
    def __init__(self, entity_name: str, primary_key_value: str):
        self.entity_name = entity_name
        self.primary_key_value = primary_key_value
        super().__init__(f"{entity_name} record '{primary_key_value}' not found")


class VariableNotFoundError(WorkflowValidationError):
    """实例变量不存在"""
    def __init__(self, instance_id: str, variable_id: str):
        self.instance_id = instance_id
        self.variable_id = variable_id
        super().__init__(
            f"Variable '{variable_id}' not found on workflow instance '{instance_id}'"
        )


class TaskNotFoundError(WorkflowValidationError):
    """任务不存在"""
    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task '{task_id}' not found")


class TaskAccessDeniedError(WorkflowValidationError):
    """任务未分配给当前用户"""
    def __init__(self, task_id: str, user_id: str):
        self.task_id = task_id
        self.user_id = user_id
        super().__init__(f"User '{user_id}' is not assigned to task '{task_id}'")


class ExpressionError(WorkflowEngineError):
    """表达式求值异常"""
    def __init__(self, expression: str, message: str):
        self.expression = expression
        super().__init__(f"Cannot evaluate expression '{expression}': {message}")


class ServiceNotFoundError(WorkflowEngineError):
    """外部服务未注册"""
    def __init__(self, service_name: str):
        self.service_name = service_name
        super().__init__(f"Service '{service_name}' is not registered")


class ActivityExecutionError(WorkflowEngineError):
    """活动执行失败（走 FAILURE 端口）"""
    def __init__(self, activity_id: str, message: str, cause: Exception = None):
        self.activity_id = activity_id
        self.cause = cause
        super().__init__(f"Activity '{activity_id}' execution failed: {message}")
