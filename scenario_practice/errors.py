"""
エラー定義
セッション操作の違反は呼び出し元に返し、外部言語サービスのエラーはローカルで回復する
"""


class ScenarioPracticeError(Exception):
    """呼び出し元に返すエラーの基底クラス"""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ScenarioNotFound(ScenarioPracticeError):
    status_code = 404
    code = "SCENARIO_NOT_FOUND"

    def __init__(self, scenario_id: str) -> None:
        super().__init__(f"Scenario {scenario_id} not found")
        self.scenario_id = scenario_id


class InvalidRole(ScenarioPracticeError):
    status_code = 400
    code = "INVALID_ROLE"

    def __init__(self, role: str, scenario_id: str) -> None:
        super().__init__(f"Role {role} is not defined in scenario {scenario_id}")
        self.role = role


class InvalidTurn(ScenarioPracticeError):
    status_code = 400
    code = "INVALID_TURN"


class SessionNotFound(ScenarioPracticeError):
    status_code = 404
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class SessionEnded(ScenarioPracticeError):
    status_code = 409
    code = "SESSION_ENDED"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} has already ended")
        self.session_id = session_id


class ReportNotFound(ScenarioPracticeError):
    status_code = 404
    code = "REPORT_NOT_FOUND"

    def __init__(self, filename: str) -> None:
        super().__init__(f"Report {filename} not found")
        self.filename = filename


class SessionBusy(ScenarioPracticeError):
    status_code = 429
    code = "SESSION_BUSY"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} is processing another request")
        self.session_id = session_id


class CollaboratorError(Exception):
    """外部言語サービスのエラー（呼び出し元には返さない）"""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class CollaboratorTimeout(CollaboratorError):
    def __init__(self, operation: str, timeout_seconds: float) -> None:
        super().__init__(operation, f"timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class CollaboratorUnavailable(CollaboratorError):
    pass
