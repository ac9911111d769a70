class TaskCoreError(Exception):
    """Erro de dominio com mensagem pronta para o usuario (``detail``)."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidSpec(TaskCoreError):
    pass


class NotFound(TaskCoreError):
    pass


class NotAssigned(TaskCoreError):
    pass


class PersistError(TaskCoreError):
    pass
