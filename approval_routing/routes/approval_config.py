"""
Approval Configuration Routes
Admin endpoints for profiles, legacy mappings, budget rules, matrices and custom roles
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from approval_routing.config.database import get_db
from approval_routing.exceptions import ResourceNotFoundError
from approval_routing.models.user import User
from approval_routing.schemas.approval_config import (
    MappingRequest, MappingResponse, ProfileRequest, ProfileResponse,
    MatrixCreate, MatrixResponse, RoleCreate, RoleResponse, RoleUpdate,
    RuleCreate, RuleResponse, RuleUpdate
)
from approval_routing.services.approval_config_service import approval_config_service
from approval_routing.services.auth_service import auth_service, CONFIG_ADMIN_ROLES
from approval_routing.services.directory_service import directory_service
from approval_routing.utils.logger import setup_logger

logger = setup_logger()
router = APIRouter()

require_admin = auth_service.require_role(*CONFIG_ADMIN_ROLES)


# ==================== PROFILES ====================

@router.get("/profiles/{user_id}", response_model=ProfileResponse)
async def get_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Active approval profile of an employee"""
    profile = approval_config_service.get_active_profile(db, current_user.company_id, user_id)
    if not profile:
        raise ResourceNotFoundError("EmployeeApprovalProfile", user_id)
    return profile


@router.put("/profiles/{user_id}", response_model=ProfileResponse)
async def set_profile(
    user_id: int,
    request: ProfileRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Replace an employee's personalized approval chain"""
    return approval_config_service.set_profile(
        db,
        current_user.company_id,
        user_id,
        [level.model_dump(mode="json") for level in request.approver_chain],
        actor_id=current_user.id,
        reasoning_summary=request.reasoning_summary
    )


@router.delete("/profiles/{user_id}")
async def clear_profile(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Deactivate an employee's profile"""
    count = approval_config_service.clear_profile(db, current_user.company_id, user_id, actor_id=current_user.id)
    return {"success": True, "message": f"Deactivated {count} profile(s)"}


# ==================== LEGACY MAPPINGS ====================

@router.put("/mappings/{user_id}", response_model=MappingResponse)
async def upsert_mapping(
    user_id: int,
    request: MappingRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Set the L1-L5 mapped approvers of an employee"""
    return approval_config_service.upsert_mapping(
        db, current_user.company_id, user_id, request.levels(), actor_id=current_user.id
    )


@router.delete("/mappings/{user_id}")
async def delete_mapping(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Remove the approver mapping of an employee"""
    approval_config_service.delete_mapping(db, current_user.company_id, user_id, actor_id=current_user.id)
    return {"success": True, "message": "Approver mapping removed"}


# ==================== BUDGET RULES ====================

@router.get("/rules")
async def list_rules(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Budget rules of the current company"""
    rules = approval_config_service.list_rules(db, current_user.company_id, include_inactive)
    return {
        "rules": [RuleResponse.model_validate(rule) for rule in rules],
        "count": len(rules)
    }


@router.post("/rules", response_model=RuleResponse, status_code=201)
async def create_rule(
    request: RuleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Create a budget rule"""
    return approval_config_service.create_rule(
        db, current_user.company_id, actor_id=current_user.id, **request.model_dump()
    )


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: int,
    request: RuleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Update a budget rule"""
    return approval_config_service.update_rule(
        db, current_user.company_id, rule_id, request.model_dump(exclude_unset=True), actor_id=current_user.id
    )


@router.delete("/rules/{rule_id}")
async def delete_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Deactivate a budget rule"""
    approval_config_service.delete_rule(db, current_user.company_id, rule_id, actor_id=current_user.id)
    return {"success": True, "message": f"Rule {rule_id} deactivated"}


# ==================== MATRICES ====================

@router.get("/matrices")
async def list_matrices(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Approval matrices of the current company, newest first"""
    matrices = approval_config_service.list_matrices(db, current_user.company_id)
    return {
        "matrices": [MatrixResponse.model_validate(matrix) for matrix in matrices],
        "count": len(matrices)
    }


@router.get("/matrices/{matrix_id}", response_model=MatrixResponse)
async def get_matrix(
    matrix_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Get a matrix with its levels"""
    return approval_config_service.get_matrix(db, current_user.company_id, matrix_id)


@router.post("/matrices", response_model=MatrixResponse, status_code=201)
async def create_matrix(
    request: MatrixCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Create a matrix; it becomes the active one unless activate is false"""
    return approval_config_service.create_matrix(
        db,
        current_user.company_id,
        request.name,
        [level.model_dump() for level in request.levels],
        actor_id=current_user.id,
        description=request.description,
        activate=request.activate
    )


@router.post("/matrices/{matrix_id}/activate")
async def activate_matrix(
    matrix_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Make a matrix the company's active matrix"""
    matrix = approval_config_service.activate_matrix(db, current_user.company_id, matrix_id, actor_id=current_user.id)
    return {
        "success": True,
        "message": f"Matrix '{matrix.name}' activated",
        "matrix_id": matrix.id,
        "enabled_levels": [level.level_number for level in matrix.enabled_levels()]
    }


# ==================== ROLES ====================

@router.get("/roles")
async def list_roles(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Custom roles of the current company"""
    roles = approval_config_service.list_roles(db, current_user.company_id)
    return {
        "roles": [RoleResponse.model_validate(role) for role in roles],
        "count": len(roles)
    }


@router.post("/roles", response_model=RoleResponse, status_code=201)
async def create_role(
    request: RoleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Create a custom role"""
    return approval_config_service.create_role(
        db, current_user.company_id, request.name, request.description, actor_id=current_user.id
    )


@router.patch("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    request: RoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Rename a custom role or change its description"""
    return approval_config_service.update_role(
        db, current_user.company_id, role_id, request.name, request.description, actor_id=current_user.id
    )


@router.delete("/roles/{role_id}")
async def delete_role(
    role_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Delete a custom role"""
    approval_config_service.delete_role(db, current_user.company_id, role_id, actor_id=current_user.id)
    return {"success": True, "message": f"Role {role_id} deleted"}


# ==================== DIAGNOSTICS ====================

@router.get("/business-head/{user_id}")
async def explain_business_head(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Explain how the business head of an employee is selected"""
    employee = directory_service.get_user(db, user_id)
    if not employee or employee.company_id != current_user.company_id:
        raise ResourceNotFoundError("User", user_id)
    return directory_service.explain_business_head(db, employee)
