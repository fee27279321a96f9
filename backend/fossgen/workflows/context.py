"""Collaborators shared by every workflow, built once at startup."""
from dataclasses import dataclass

from fossgen.jobs.store import JobStore
from fossgen.services.cad_automation import CadAutomationClient
from fossgen.services.case_study_repository import CaseStudyRepository
from fossgen.services.currency import CurrencyConverter
from fossgen.services.file_storage import FileStorageService
from fossgen.services.image_processor import ImageProcessor
from fossgen.services.script_llm import ScriptGenerator


@dataclass
class WorkflowContext:
    store: JobStore
    playground_scripts: ScriptGenerator
    symbol_scripts: ScriptGenerator
    cad: CadAutomationClient
    images: ImageProcessor
    storage: FileStorageService
    currency: CurrencyConverter
    case_studies: CaseStudyRepository
    drive_hub_path: str = "F:/Shared drives/HUB"
    symbol_storage_url: str = ""
