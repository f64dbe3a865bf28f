"""Children import wizard: Upload -> Mapping -> Preview -> Results.

The wizard owns the state of one import in progress. Each stage's state is
created by one service call and replaced, never patched, when the stage is
retried. Going back discards everything owned by the stage being left.
"""
import base64
import enum
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Protocol

from src.kita_fees.schemas.child_import import (
    ExecuteRequest,
    ExecuteResult,
    ParsedFile,
    PreviewRequest,
    PreviewResult,
)
from src.kita_fees.services.child_import import ImportServiceError
from src.kita_fees.services.field_mapping import (
    SYSTEM_FIELD_KEYS,
    auto_detect,
    blocking_missing_mapping,
    missing_required_mapping,
)
from src.kita_fees.services.reconciliation import ReconciliationController

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".csv", ".txt", ".tsv")


class ImportService(Protocol):
    def parse_csv(self, content: bytes) -> ParsedFile: ...

    def preview(self, request: PreviewRequest) -> PreviewResult: ...

    def execute(self, request: ExecuteRequest) -> ExecuteResult: ...


class WizardStage(str, enum.Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    PREVIEW = "preview"
    RESULTS = "results"


class ImportWizardError(ValueError):
    pass


class WizardValidationError(ImportWizardError):
    pass


class WizardBusyError(ImportWizardError):
    pass


class ImportWizard:
    def __init__(self):
        self.id = str(uuid.uuid4())
        self.touched_at = datetime.now()
        self.busy = False
        self.error: Optional[str] = None
        self._reset()

    def _reset(self) -> None:
        self.stage = WizardStage.UPLOAD
        self.file_name: Optional[str] = None
        self.file_content: Optional[bytes] = None
        self.parsed: Optional[ParsedFile] = None
        self.mapping: Dict[str, int] = {}
        self.reconciliation: Optional[ReconciliationController] = None
        self.result: Optional[ExecuteResult] = None

    def touch(self) -> None:
        self.touched_at = datetime.now()

    def dismiss_error(self) -> None:
        self.error = None

    @contextmanager
    def _service_call(self, name: str):
        if self.busy:
            raise WizardBusyError("Es läuft bereits eine Anfrage")
        self.busy = True
        self.error = None
        try:
            yield
        except ImportServiceError as e:
            self.error = str(e)
            logger.warning(f"Import wizard {self.id}: {name} failed: {e}")
            raise
        finally:
            self.busy = False

    def _require_stage(self, stage: WizardStage) -> None:
        if self.stage != stage:
            raise WizardValidationError(
                f"Aktion im Schritt '{self.stage.value}' nicht möglich (erwartet: '{stage.value}')"
            )

    def upload(self, service: ImportService, file_name: str, content: bytes) -> ParsedFile:
        self._require_stage(WizardStage.UPLOAD)
        if not file_name or not file_name.lower().endswith(ALLOWED_EXTENSIONS):
            raise WizardValidationError("Bitte eine CSV-Datei hochladen (.csv, .txt, .tsv)")

        with self._service_call("parse"):
            parsed = service.parse_csv(content)

        self.file_name = file_name
        self.file_content = content
        self.parsed = parsed
        self.mapping = auto_detect(parsed.headers)
        self.stage = WizardStage.MAPPING
        logger.info(
            f"Import wizard {self.id}: parsed {file_name} ({parsed.total_rows} rows), "
            f"auto-mapped {len(self.mapping)} fields"
        )
        return parsed

    def set_mapping(self, field: str, column: Optional[int]) -> None:
        self._require_stage(WizardStage.MAPPING)
        if field not in SYSTEM_FIELD_KEYS:
            raise WizardValidationError(f"Unbekanntes Feld: {field}")
        if column is None:
            self.mapping.pop(field, None)
            return
        if column < 0 or column >= len(self.parsed.headers):
            raise WizardValidationError(f"Ungültige Spalte für {field}: {column}")
        self.mapping[field] = column

    def replace_mapping(self, mapping: Dict[str, Optional[int]]) -> None:
        self._require_stage(WizardStage.MAPPING)
        previous = dict(self.mapping)
        self.mapping = {}
        try:
            for field, column in mapping.items():
                self.set_mapping(field, column)
        except WizardValidationError:
            self.mapping = previous
            raise

    @property
    def missing_required(self) -> List[str]:
        return missing_required_mapping(self.mapping)

    def request_preview(self, service: ImportService) -> ReconciliationController:
        self._require_stage(WizardStage.MAPPING)
        blocking = blocking_missing_mapping(self.mapping)
        if blocking:
            raise WizardValidationError(f"Pflichtfelder nicht zugeordnet: {', '.join(blocking)}")

        request = PreviewRequest(
            file_content=base64.b64encode(self.file_content).decode("ascii"),
            separator=self.parsed.detected_separator,
            mapping=dict(self.mapping),
            skip_header=True,
        )
        with self._service_call("preview"):
            preview = service.preview(request)

        self.reconciliation = ReconciliationController(preview)
        self.stage = WizardStage.PREVIEW
        logger.info(
            f"Import wizard {self.id}: preview with {preview.valid_count} valid, "
            f"{preview.error_count} other rows"
        )
        return self.reconciliation

    def controller(self) -> ReconciliationController:
        self._require_stage(WizardStage.PREVIEW)
        return self.reconciliation

    def execute(self, service: ImportService) -> ExecuteResult:
        self._require_stage(WizardStage.PREVIEW)
        request = self.reconciliation.build_execute_request()

        with self._service_call("execute"):
            result = service.execute(request)

        self.result = result
        self.reconciliation = None
        self.stage = WizardStage.RESULTS
        logger.info(
            f"Import wizard {self.id}: created={result.children_created} "
            f"updated={result.children_updated} errors={len(result.errors)}"
        )
        return result

    def result_error_lines(self) -> List[str]:
        if self.result is None:
            return []
        return [f"Zeile {e.row_index + 1}: {e.error}" for e in self.result.errors]

    def back(self) -> WizardStage:
        if self.busy:
            raise WizardBusyError("Es läuft bereits eine Anfrage")
        if self.stage == WizardStage.MAPPING:
            self.file_name = None
            self.file_content = None
            self.parsed = None
            self.mapping = {}
            self.stage = WizardStage.UPLOAD
        elif self.stage == WizardStage.PREVIEW:
            self.reconciliation = None
            self.stage = WizardStage.MAPPING
        else:
            raise WizardValidationError(f"Zurück ist im Schritt '{self.stage.value}' nicht möglich")
        self.error = None
        return self.stage

    def cancel(self) -> None:
        self.error = None
        self._reset()


class WizardRegistry:
    """Process-local store of wizards in progress, keyed by wizard id."""

    def __init__(self):
        self._wizards: Dict[str, ImportWizard] = {}
        self._lock = threading.Lock()

    def get(self, wizard_id: Optional[str]) -> Optional[ImportWizard]:
        if not wizard_id:
            return None
        with self._lock:
            wizard = self._wizards.get(wizard_id)
        if wizard:
            wizard.touch()
        return wizard

    def create(self) -> ImportWizard:
        wizard = ImportWizard()
        with self._lock:
            self._wizards[wizard.id] = wizard
        return wizard

    def discard(self, wizard_id: Optional[str]) -> None:
        with self._lock:
            self._wizards.pop(wizard_id, None)

    def purge_expired(self, ttl_minutes: int) -> int:
        cutoff = datetime.now() - timedelta(minutes=ttl_minutes)
        with self._lock:
            expired = [
                wid for wid, w in self._wizards.items()
                if w.touched_at < cutoff and not w.busy
            ]
            for wid in expired:
                del self._wizards[wid]
        if expired:
            logger.info(f"Purged {len(expired)} expired import wizards")
        return len(expired)

    def __len__(self) -> int:
        return len(self._wizards)


IMPORT_WIZARDS = WizardRegistry()
