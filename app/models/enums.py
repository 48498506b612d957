"""Closed value sets shared by models, services and schemas."""
import enum

from sqlalchemy import Enum as SAEnum


def enum_type(enum_cls, length: int = 40) -> SAEnum:
    """Column type storing the enum *value* as a checked VARCHAR."""
    return SAEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        validate_strings=True,
        length=length,
    )


class AuditStage(enum.IntEnum):
    """The 8 lifecycle stages, in order."""
    NOTIFICACION = 1
    CARGA_DOCUMENTOS = 2
    VALIDACION_AUTOMATICA = 3
    EVALUACION_AUDITOR = 4
    VISITA_PRESENCIAL = 5
    CONSOLIDACION = 6
    INFORME_FINAL = 7
    CIERRE = 8

    @property
    def label(self) -> str:
        return self.name.lower()


class AuditStatus(str, enum.Enum):
    EN_CURSO = "en_curso"
    COMPLETADA = "completada"
    SUSPENDIDA = "suspendida"
    CANCELADA = "cancelada"

    @property
    def is_terminal(self) -> bool:
        return self is not AuditStatus.EN_CURSO


class SectionCategory(str, enum.Enum):
    PRESENCIAL = "presencial"
    PARQUE = "parque"


class EvaluationState(str, enum.Enum):
    PENDIENTE = "pendiente"
    EN_REVISION = "en_revision"
    COMPLETADA = "completada"
    REQUIERE_ACLARACION = "requiere_aclaracion"


class EvaluationResult(str, enum.Enum):
    CUMPLE = "cumple"
    NO_CUMPLE = "no_cumple"
    CUMPLE_CON_OBSERVACIONES = "cumple_con_observaciones"
    NO_APLICA = "no_aplica"
    PENDIENTE_VISITA = "pendiente_visita"


class ValidationType(str, enum.Enum):
    FORMATO_ARCHIVO = "formato_archivo"
    CONTENIDO_DOCUMENTO = "contenido_documento"
    PARQUE_INFORMATICO = "parque_informatico"
    COMPLETITUD_SECCION = "completitud_seccion"
    REGLAS_NEGOCIO = "reglas_negocio"
    CONSISTENCIA_DATOS = "consistencia_datos"
    SCORING_IA = "scoring_ia"
    VALIDACION_MANUAL = "validacion_manual"


class ValidationResult(str, enum.Enum):
    EXITOSO = "exitoso"
    CON_ADVERTENCIAS = "con_advertencias"
    FALLIDO = "fallido"
    PENDIENTE = "pendiente"


class ValidationExecutor(str, enum.Enum):
    SISTEMA = "sistema"
    USUARIO = "usuario"
    ETL = "etl"
    IA = "ia"

    @property
    def is_automatic(self) -> bool:
        return self is not ValidationExecutor.USUARIO


class VisitState(str, enum.Enum):
    PROGRAMADA = "programada"
    CONFIRMADA = "confirmada"
    EN_CURSO = "en_curso"
    COMPLETADA = "completada"
    REPROGRAMADA = "reprogramada"
    CANCELADA = "cancelada"


class LocationVerification(str, enum.Enum):
    PENDIENTE = "pendiente"
    VERIFICADA = "verificada"
    DISCREPANCIA_MENOR = "discrepancia_menor"
    DISCREPANCIA_MAYOR = "discrepancia_mayor"
    NO_VERIFICABLE = "no_verificable"


class FindingType(str, enum.Enum):
    CUMPLIMIENTO = "cumplimiento"
    INCUMPLIMIENTO = "incumplimiento"
    OBSERVACION = "observacion"
    MEJORA = "mejora"
    CRITICO = "critico"
    RIESGO = "riesgo"
    OPORTUNIDAD = "oportunidad"


class FindingCategory(str, enum.Enum):
    INFRAESTRUCTURA = "infraestructura"
    TECNOLOGIA = "tecnologia"
    SEGURIDAD = "seguridad"
    OPERACIONES = "operaciones"
    PERSONAL = "personal"
    DOCUMENTACION = "documentacion"
    PROCESOS = "procesos"
    AMBIENTE = "ambiente"


class FindingSeverity(str, enum.Enum):
    BAJA = "baja"
    MEDIA = "media"
    ALTA = "alta"
    CRITICA = "critica"


class RemediationTimeframe(str, enum.Enum):
    INMEDIATO = "inmediato"
    HORAS_24 = "24_horas"
    SEMANA_1 = "1_semana"
    MES_1 = "1_mes"
    MESES_3 = "3_meses"
    MESES_6 = "6_meses"


class FindingTrackingState(str, enum.Enum):
    ABIERTO = "abierto"
    EN_SEGUIMIENTO = "en_seguimiento"
    CORREGIDO = "corregido"
    VERIFICADO = "verificado"
    CERRADO = "cerrado"
    DIFERIDO = "diferido"


class VerificationResult(str, enum.Enum):
    PENDIENTE = "pendiente"
    CORREGIDO_SATISFACTORIAMENTE = "corregido_satisfactoriamente"
    CORRECCION_PARCIAL = "correccion_parcial"
    NO_CORREGIDO = "no_corregido"
    NUEVA_INCIDENCIA = "nueva_incidencia"


class ComplianceTier(str, enum.Enum):
    EXCELENTE = "excelente"
    SATISFACTORIO = "satisfactorio"
    ACEPTABLE = "aceptable"
    DEFICIENTE = "deficiente"
    CRITICO = "critico"


class ReportConclusion(str, enum.Enum):
    CUMPLE_TOTALMENTE = "cumple_totalmente"
    CUMPLE_CON_OBSERVACIONES = "cumple_con_observaciones"
    CUMPLE_PARCIALMENTE = "cumple_parcialmente"
    NO_CUMPLE = "no_cumple"
    REQUIERE_SEGUIMIENTO = "requiere_seguimiento"


class ReportApprovalState(str, enum.Enum):
    BORRADOR = "borrador"
    EN_REVISION = "en_revision"
    APROBADO = "aprobado"
    ENTREGADO = "entregado"
    ACEPTADO_PROVEEDOR = "aceptado_proveedor"
    OBJETADO_PROVEEDOR = "objetado_proveedor"
