from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional

from planificacion.core.exceptions import PermissionDenied
from planificacion.schemas.principal import Principal, Role


class Module(str, Enum):
    """Áreas funcionales del sistema."""

    CONFIGURACION_INSTITUCIONAL = "configuracionInstitucional"
    GESTION_OBJETIVOS = "gestionObjetivos"
    PROYECTOS_INVERSION = "proyectosInversion"
    REPORTES = "reportes"
    AUDITORIA = "auditoria"


class Capability(str, Enum):
    """Capacidades otorgables por módulo."""

    REGISTER_EDIT = "canRegisterEdit"
    VALIDATE = "canValidate"
    APPROVE = "canApprove"
    CONSULT = "canConsult"
    SEND_TO_VALIDATION = "canSendToValidation"
    SEND_TO_REVIEW = "canSendToReview"
    EXPORT_COMPLETE = "canExportComplete"
    EXPORT_LIMITED = "canExportLimited"
    AUDIT_SYSTEM = "canAuditSystem"


class ExportLevel(str, Enum):
    COMPLETA = "COMPLETA"
    LIMITADA = "LIMITADA"


MODULE_CAPABILITIES: Mapping[Module, FrozenSet[Capability]] = MappingProxyType(
    {
        Module.CONFIGURACION_INSTITUCIONAL: frozenset(
            {Capability.REGISTER_EDIT, Capability.CONSULT}
        ),
        Module.GESTION_OBJETIVOS: frozenset(
            {
                Capability.REGISTER_EDIT,
                Capability.VALIDATE,
                Capability.CONSULT,
                Capability.SEND_TO_VALIDATION,
            }
        ),
        Module.PROYECTOS_INVERSION: frozenset(
            {
                Capability.REGISTER_EDIT,
                Capability.APPROVE,
                Capability.CONSULT,
                Capability.SEND_TO_REVIEW,
            }
        ),
        Module.REPORTES: frozenset(
            {Capability.CONSULT, Capability.EXPORT_COMPLETE, Capability.EXPORT_LIMITED}
        ),
        Module.AUDITORIA: frozenset({Capability.CONSULT, Capability.AUDIT_SYSTEM}),
    }
)

# Capacidad de "decidir sobre un envío" y de "enviar hacia adelante" según módulo
DECIDE_CAPABILITIES = frozenset({Capability.VALIDATE, Capability.APPROVE})
SEND_FORWARD_CAPABILITIES = frozenset({Capability.SEND_TO_VALIDATION, Capability.SEND_TO_REVIEW})


ROLE_CAPABILITIES: Dict[Role, Dict[Module, Iterable[Capability]]] = {
    Role.ADMIN: dict(MODULE_CAPABILITIES),
    Role.PLANIF: {
        Module.CONFIGURACION_INSTITUCIONAL: {Capability.CONSULT},
        Module.GESTION_OBJETIVOS: {
            Capability.REGISTER_EDIT,
            Capability.CONSULT,
            Capability.SEND_TO_VALIDATION,
        },
        Module.PROYECTOS_INVERSION: {
            Capability.REGISTER_EDIT,
            Capability.CONSULT,
            Capability.SEND_TO_REVIEW,
        },
        Module.REPORTES: {Capability.CONSULT, Capability.EXPORT_COMPLETE},
    },
    Role.REVISOR: {
        Module.PROYECTOS_INVERSION: {Capability.APPROVE, Capability.CONSULT},
        Module.REPORTES: {Capability.CONSULT, Capability.EXPORT_LIMITED},
    },
    Role.VALID: {
        Module.GESTION_OBJETIVOS: {Capability.VALIDATE, Capability.CONSULT},
        Module.REPORTES: {Capability.CONSULT, Capability.EXPORT_LIMITED},
    },
    Role.AUDITOR: {
        Module.GESTION_OBJETIVOS: {Capability.CONSULT},
        Module.PROYECTOS_INVERSION: {Capability.CONSULT},
        Module.REPORTES: {Capability.CONSULT, Capability.EXPORT_COMPLETE},
        Module.AUDITORIA: {Capability.CONSULT, Capability.AUDIT_SYSTEM},
    },
    Role.CONSUL: {module: {Capability.CONSULT} for module in Module},
}


class RoleCapabilityMatrix:
    """Tabla inmutable rol x módulo -> capacidades.

    Los pares no listados resuelven al conjunto vacío. La construcción falla si
    la tabla viola alguna regla: capacidad ajena al módulo, escritura sin
    consulta, o ADMIN sin el conjunto completo.
    """

    def __init__(self, table: Mapping[Role, Mapping[Module, Iterable[Capability]]]):
        frozen: Dict[Role, Mapping[Module, FrozenSet[Capability]]] = {}
        for role, modules in table.items():
            role_entry: Dict[Module, FrozenSet[Capability]] = {}
            for module, capabilities in modules.items():
                granted = frozenset(capabilities)
                if not granted:
                    continue
                foreign = granted - MODULE_CAPABILITIES[module]
                if foreign:
                    raise ValueError(
                        f"{role.value}/{module.value}: capacidades no aplicables "
                        f"{sorted(c.value for c in foreign)}"
                    )
                if Capability.CONSULT not in granted:
                    raise ValueError(f"{role.value}/{module.value}: falta canConsult")
                role_entry[module] = granted
            frozen[role] = MappingProxyType(role_entry)

        admin = frozen.get(Role.ADMIN, {})
        for module, capabilities in MODULE_CAPABILITIES.items():
            if admin.get(module) != capabilities:
                raise ValueError(f"ADMIN debe tener todas las capacidades de {module.value}")

        self._table: Mapping[Role, Mapping[Module, FrozenSet[Capability]]] = MappingProxyType(frozen)

    def capabilities(self, role: Role, module: Module) -> FrozenSet[Capability]:
        return self._table.get(role, MappingProxyType({})).get(module, frozenset())

    def entries(self) -> Mapping[Role, Mapping[Module, FrozenSet[Capability]]]:
        return self._table


class PermissionResolver:
    """Resuelve capacidades efectivas de un principal. Sin estado ni efectos."""

    ROLE_DESCRIPTIONS: Mapping[Role, str] = MappingProxyType(
        {
            Role.ADMIN: "Administrador del Sistema",
            Role.PLANIF: "Técnico Planificador",
            Role.REVISOR: "Revisor Institucional",
            Role.VALID: "Autoridad Validadora",
            Role.AUDITOR: "Auditor del Sistema",
            Role.CONSUL: "Consulta",
        }
    )

    def __init__(self, matrix: RoleCapabilityMatrix):
        self.matrix = matrix

    def effective_capabilities(self, principal: Principal, module: Module) -> FrozenSet[Capability]:
        granted: FrozenSet[Capability] = frozenset()
        for role in principal.roles:
            granted |= self.matrix.capabilities(role, module)
        return granted

    def has(self, principal: Principal, module: Module, capability: Capability) -> bool:
        return capability in self.effective_capabilities(principal, module)

    def check(
        self, principal: Principal, module: Module, capability: Capability
    ) -> Optional[PermissionDenied]:
        if self.has(principal, module, capability):
            return None
        return PermissionDenied(
            f"Se requiere permiso: {capability.value} en {module.value}",
            context={"module": module.value, "capability": capability.value},
        )

    def can_register_edit(self, principal: Principal, module: Module) -> bool:
        return self.has(principal, module, Capability.REGISTER_EDIT)

    def can_validate(self, principal: Principal, module: Module) -> bool:
        return bool(self.effective_capabilities(principal, module) & DECIDE_CAPABILITIES)

    def can_consult(self, principal: Principal, module: Module) -> bool:
        return self.has(principal, module, Capability.CONSULT)

    def can_send_forward(self, principal: Principal, module: Module) -> bool:
        return bool(self.effective_capabilities(principal, module) & SEND_FORWARD_CAPABILITIES)

    def can_export_full(self, principal: Principal, module: Module = Module.REPORTES) -> bool:
        return self.has(principal, module, Capability.EXPORT_COMPLETE)

    def can_export_limited(self, principal: Principal, module: Module = Module.REPORTES) -> bool:
        return self.has(principal, module, Capability.EXPORT_LIMITED)

    def can_audit(self, principal: Principal, module: Module = Module.AUDITORIA) -> bool:
        return self.has(principal, module, Capability.AUDIT_SYSTEM)

    def export_level(self, principal: Principal) -> Optional[ExportLevel]:
        if self.can_export_full(principal):
            return ExportLevel.COMPLETA
        if self.can_export_limited(principal):
            return ExportLevel.LIMITADA
        return None

    def module_flags(self, principal: Principal) -> Dict[Module, Dict[str, bool]]:
        """Banderas por módulo para el renderizado condicional de la interfaz."""
        flags: Dict[Module, Dict[str, bool]] = {}
        for module in Module:
            granted = self.effective_capabilities(principal, module)
            flags[module] = {
                capability.value: capability in granted
                for capability in sorted(MODULE_CAPABILITIES[module], key=lambda c: c.value)
            }
        return flags

    def accessible_modules(self, principal: Principal) -> List[Module]:
        return [module for module in Module if self.can_consult(principal, module)]

    @classmethod
    def get_role_description(cls, role: Role) -> str:
        return cls.ROLE_DESCRIPTIONS.get(role, "Usuario del Sistema")


role_capability_matrix = RoleCapabilityMatrix(ROLE_CAPABILITIES)
permission_resolver = PermissionResolver(role_capability_matrix)
