from typing import List, Optional, Union
import logging

from pydantic import BaseModel, Field

from cdm import TranslationIssue
from document_dispatcher import InboundResult, acknowledge, to_format, translate_inbound_batch, translate_outbound
from edi_defs import AckStatus, EdiFormat, IssueCode, TransactionSetCode
from edi_errors import FormatError, UnsupportedFormatError
from edi_options import InterpreterOptions, X12EnvelopeOptions
from erp_models import ErpDocument
from field_mapping import FieldMappingTable
from mapping_manager import MappingManager
from transaction_generators import transaction_set_for

logger = logging.getLogger(__name__)

INBOUND = "inbound"
OUTBOUND = "outbound"


class TranslationResult(BaseModel):
    """Outcome of receiving one partner document."""
    accepted: bool
    results: List[InboundResult] = Field(default_factory=list)
    # Document-level failures that prevented any transaction from being read.
    findings: List[TranslationIssue] = Field(default_factory=list)

    @property
    def entities(self) -> List[ErpDocument]:
        return [result.entity for result in self.results if result.entity is not None]


class EdiTranslationService:
    """Partner-aware translation between partner documents and ERP entities."""

    def __init__(self, mapping_base_path: str = "mappings", interpreter_options: Optional[InterpreterOptions] = None):
        self.mapping_manager = MappingManager(mapping_base_path)
        self.interpreter_options = interpreter_options

    def mapping_for(
        self,
        transaction_set: Union[TransactionSetCode, str],
        partner_id: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> Optional[FieldMappingTable]:
        code = transaction_set.value if isinstance(transaction_set, TransactionSetCode) else str(transaction_set)
        return self.mapping_manager.get_mapping(code, partner_id, direction)

    def receive(
        self,
        content: Union[str, bytes],
        format: Union[EdiFormat, str],
        partner_id: Optional[str] = None,
        transaction_set: Optional[Union[TransactionSetCode, str]] = None,
        options=None,
    ) -> TranslationResult:
        """
        Translate an inbound partner document into ERP entities.

        Args:
            content: The partner document
            format: Wire format of the document
            partner_id: Trading partner whose mappings apply
            transaction_set: Required for flat formats; X12 names its own sets
            options: Codec options for the format

        Returns:
            TranslationResult with one InboundResult per transaction set
        """
        try:
            logger.info(f"Receiving {format} document from partner {partner_id or '<base>'}")
            results = translate_inbound_batch(
                content,
                format,
                transaction_set=transaction_set,
                options=options,
                interpreter_options=self.interpreter_options,
                mapping_resolver=lambda code: self.mapping_for(code, partner_id, INBOUND),
            )
        except FormatError as e:
            logger.error(f"Translation of {format} document failed: {e}")
            return TranslationResult(accepted=False, findings=[e.to_issue()])
        except UnsupportedFormatError as e:
            logger.error(f"Translation of {format} document failed: {e}")
            issue = TranslationIssue(code=IssueCode.UNSUPPORTED_TRANSACTION_SET, message=str(e))
            return TranslationResult(accepted=False, findings=[issue])

        accepted = bool(results) and all(result.outcome.status is not AckStatus.REJECTED for result in results)
        logger.info(f"Received {len(results)} transaction set(s): accepted={accepted}")
        return TranslationResult(accepted=accepted, results=results)

    def send(
        self,
        entity: ErpDocument,
        format: Union[EdiFormat, str],
        partner_id: Optional[str] = None,
        options=None,
        envelope: Optional[X12EnvelopeOptions] = None,
    ) -> str:
        """Translate an ERP entity into the partner's document format."""
        code = transaction_set_for(entity)
        logger.info(f"Sending {code.value} to partner {partner_id or '<base>'} as {format}")
        return translate_outbound(entity, format, self.mapping_for(code, partner_id, OUTBOUND), options, envelope)

    def acknowledge(
        self,
        result: TranslationResult,
        format: Union[EdiFormat, str] = EdiFormat.X12,
        options=None,
        envelope: Optional[X12EnvelopeOptions] = None,
    ) -> str:
        """
        Functional acknowledgment for a received document.

        The X12 AK1 echoes the functional group of the first received transaction.
        """
        outcomes = [r.outcome for r in result.results]
        if to_format(format) is not EdiFormat.X12 or not result.results:
            return acknowledge(outcomes, format, options, envelope)
        first = result.results[0]
        return acknowledge(
            outcomes,
            format,
            options,
            envelope,
            group_control_number=first.group_control_number or "1",
            functional_identifier=first.functional_identifier or None,
        )
