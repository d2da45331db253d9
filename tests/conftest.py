"""Shared fixtures: source/target snapshots modelled on the two demo databases."""

import copy
import datetime as dt
from typing import Any, Dict

import pytest

from schemadrift.engine import diff_snapshots
from schemadrift.models import CatalogObject, DiffResult, Kind, Snapshot
from schemadrift.snapshots import build_snapshot, snapshot_from_document


def col(name: str, data_type: str, nullable: Any = True, **extra: Any) -> Dict[str, Any]:
    attributes = {"DataType": data_type, "IsNullable": nullable}
    attributes.update(extra)
    return {"kind": "Column", "name": name, "attributes": attributes}


def index(name: str, columns: Any, **extra: Any) -> Dict[str, Any]:
    attributes = {"IndexType": "NONCLUSTERED", "IsUnique": False, "KeyColumns": columns}
    attributes.update(extra)
    return {"kind": "Index", "name": name, "attributes": attributes}


def check(name: str, definition: str) -> Dict[str, Any]:
    return {"kind": "Constraint", "name": name, "attributes": {"ConstraintType": "CHECK", "Definition": definition}}


GET_FULL_NAME_SOURCE = """CREATE FUNCTION HR.GetFullName(@FirstName NVARCHAR(50), @LastName NVARCHAR(50))
RETURNS NVARCHAR(101)
AS
BEGIN
    RETURN @FirstName + ' ' + @LastName;
END"""

GET_FULL_NAME_TARGET = (
    "create function [HR].[GetFullName] (@FirstName nvarchar(50), @LastName nvarchar(50)) -- concatenates\n"
    "returns nvarchar(101) as begin return @FirstName + ' ' + @LastName; end"
)

GET_EMPLOYEE_SOURCE = """CREATE PROCEDURE HR.GetEmployeeById
    @EmployeeID INT
AS
BEGIN
    SET NOCOUNT ON;
    SELECT EmployeeID, FirstName, LastName, Email, IsActive
    FROM HR.Employees
    WHERE EmployeeID = @EmployeeID;
END"""

GET_EMPLOYEE_TARGET = """CREATE PROCEDURE HR.GetEmployeeById
    @EmployeeID INT,
    @IncludeInactive BIT = 0
AS
BEGIN
    SET NOCOUNT ON;
    SELECT EmployeeID, FirstName, LastName, Email, IsActive, EmployeeCode
    FROM HR.Employees
    WHERE EmployeeID = @EmployeeID
    AND (@IncludeInactive = 1 OR IsActive = 1);
END"""


SOURCE_DOC: Dict[str, Any] = {
    "source_id": "TestSourceDB",
    "captured_at": "2024-05-01T09:00:00Z",
    "objects": {
        "Schema": [
            {"name": "HR", "attributes": {"Owner": "dbo"}},
            {"name": "Sales", "attributes": {"Owner": "dbo"}},
            {"name": "Inventory", "attributes": {"Owner": "dbo"}},
        ],
        "DataType": [
            {"name": "dbo.EmailAddress", "attributes": {"BaseType": "nvarchar", "Length": 255, "IsNullable": True}},
            {"name": "dbo.PhoneNumber", "attributes": {"BaseType": "nvarchar", "Length": 20, "IsNullable": True}},
            {"name": "HR.EmployeeID", "attributes": {"BaseType": "int", "IsNullable": True}},
        ],
        "Table": [
            {
                "name": "HR.Employees",
                "attributes": {"IsMemoryOptimized": False},
                "children": [
                    col("EmployeeID", "HR.EmployeeID", False, IsIdentity=True, IdentitySeed=1, IdentityIncrement=1),
                    col("FirstName", "NVARCHAR(50)", False),
                    col("Email", "dbo.EmailAddress", False),
                    col("IsActive", "BIT", True, DefaultValue="((1))"),
                    col("CreatedDate", "DATETIME2", True, DefaultValue="(getdate())"),
                    index("PK_Employees", "EmployeeID", IndexType="CLUSTERED", IsUnique=True, IsPrimaryKey=True),
                    index("IX_Employees_HireDate", "HireDate"),
                    check("CK_Employees_Salary", "([Salary]>(0))"),
                ],
            },
            {
                "name": "Sales.Customers",
                "attributes": {"IsMemoryOptimized": 0},
                "children": [
                    col("CustomerID", "INT", "NO", IsIdentity=1),
                    col("CompanyName", "NVARCHAR(100)", "NO"),
                    col("CreatedDate", "DATETIME2", "YES", DefaultValue="(getdate())"),
                    col("IsActive", "BIT", "YES", DefaultValue="((1))"),
                    index("IX_Customers_CompanyName", "[CompanyName]"),
                ],
            },
            {
                "name": "Inventory.Products",
                "attributes": {"IsMemoryOptimized": False},
                "children": [
                    col("ProductID", "INT", False, IsIdentity=True),
                    col("UnitPrice", "DECIMAL(10,2)", False),
                    check("CK_Products_UnitPrice", "([UnitPrice]>(0))"),
                ],
            },
        ],
        "View": [
            {
                "name": "HR.EmployeeSummary",
                "attributes": {
                    "Definition": "CREATE VIEW HR.EmployeeSummary AS SELECT e.EmployeeID, e.FirstName FROM HR.Employees e",
                    "IsSchemaBound": False,
                },
            },
        ],
        "Procedure": [
            {
                "name": "HR.GetEmployeeById",
                "attributes": {"Parameters": "@EmployeeID INT", "Definition": GET_EMPLOYEE_SOURCE},
            },
            {
                "name": "Inventory.GetLowStockProducts",
                "attributes": {
                    "Parameters": "@ReorderLevel INT = 10",
                    "Definition": "CREATE PROCEDURE Inventory.GetLowStockProducts @ReorderLevel INT = 10 AS SELECT 1",
                },
            },
        ],
        "Function": [
            {
                "name": "HR.GetFullName",
                "attributes": {
                    "Parameters": "@FirstName NVARCHAR(50), @LastName NVARCHAR(50)",
                    "ReturnType": "NVARCHAR(101)",
                    "FunctionType": "SCALAR_FUNCTION",
                    "Definition": GET_FULL_NAME_SOURCE,
                },
            },
        ],
        "User": [
            {"name": "TestUser", "attributes": {"UserType": "SQL_USER", "AuthenticationType": "NONE"}},
        ],
        "Role": [
            {"name": "HR_ReadOnly", "attributes": {"Owner": "dbo", "Members": ["TestUser"]}},
            {"name": "Sales_Full", "attributes": {"Owner": "dbo", "Members": []}},
        ],
        "Permission": [
            {
                "name": "HR_ReadOnly|SELECT|SCHEMA::HR",
                "attributes": {"Grantee": "HR_ReadOnly", "Permission": "SELECT", "State": "GRANT", "SecurableClass": "SCHEMA", "Securable": "HR"},
            },
            {
                "name": "Sales_Full|EXECUTE|OBJECT::Sales.GetOrdersByCustomer",
                "attributes": {"Grantee": "Sales_Full", "Permission": "EXECUTE", "State": "GRANT", "SecurableClass": "OBJECT", "Securable": "Sales.GetOrdersByCustomer"},
            },
        ],
        "QueryStore": [
            {"name": "QueryStore", "attributes": {"DesiredState": "READ_WRITE", "MaxStorageSizeMb": 100}},
        ],
        "QueryStorePlan": [
            {
                "name": "Q12.P34",
                "attributes": {"QueryText": "SELECT * FROM Sales.Orders WHERE CustomerID = @p1", "IsForced": True},
            },
        ],
    },
}

TARGET_DOC: Dict[str, Any] = {
    "source_id": "TestTargetDB",
    "captured_at": "2024-05-01T09:05:00Z",
    "objects": {
        "Schema": [
            {"name": "HR", "attributes": {"Owner": "[dbo]"}},
            {"name": "Sales", "attributes": {"Owner": "dbo"}},
            {"name": "Finance", "attributes": {"Owner": "dbo"}},
        ],
        "DataType": [
            {"name": "dbo.EmailAddress", "attributes": {"BaseType": "NVARCHAR", "Length": 300, "IsNullable": True}},
            {"name": "dbo.PhoneNumber", "attributes": {"BaseType": "nvarchar", "Length": "20", "IsNullable": 1}},
            {"name": "dbo.ZipCode", "attributes": {"BaseType": "nvarchar", "Length": 10, "IsNullable": True}},
        ],
        "Table": [
            {
                "name": "HR.Employees",
                "attributes": {"IsMemoryOptimized": False},
                "children": [
                    col("EmployeeID", "INT", False, IsIdentity=True, IdentitySeed=1, IdentityIncrement=1),
                    col("FirstName", "nvarchar ( 50 )", False),
                    col("Email", "[dbo].[EmailAddress]", False),
                    col("IsActive", "bit", True, DefaultValue="(1)"),
                    col("CreatedDate", "datetime2", True, DefaultValue="(GETDATE())"),
                    col("EmployeeCode", "NVARCHAR(10)", True),
                    index("PK_Employees", ["EmployeeID"], IndexType="clustered", IsUnique=True, IsPrimaryKey=True),
                    index("IX_Employees_EmployeeCode", "EmployeeCode"),
                    check("CK_Employees_Salary", "Salary > 0"),
                ],
            },
            {
                "name": "Sales.Customers",
                "attributes": {"IsMemoryOptimized": False},
                "children": [
                    col("CustomerID", "int", False, IsIdentity=True),
                    col("CompanyName", "nvarchar(100)", False),
                    col("CreatedDate", "datetime2", True, DefaultValue="(GETDATE())"),
                    col("IsActive", "bit", True, DefaultValue="(1)"),
                    index("IX_Customers_CompanyName", ["CompanyName"]),
                ],
            },
            {
                "name": "Sales.Products",
                "attributes": {"IsMemoryOptimized": False},
                "children": [
                    col("ProductID", "INT", False, IsIdentity=True),
                    col("UnitPrice", "DECIMAL(10,2)", False),
                    col("ProductCode", "NVARCHAR(20)", True),
                    check("CK_Products_UnitPrice", "([UnitPrice]>=(0))"),
                ],
            },
        ],
        "View": [
            {
                "name": "HR.EmployeeSummary",
                "attributes": {
                    "Definition": (
                        "CREATE VIEW HR.EmployeeSummary AS "
                        "SELECT e.EmployeeID, e.FirstName, e.EmployeeCode FROM HR.Employees e"
                    ),
                    "IsSchemaBound": False,
                },
            },
        ],
        "Procedure": [
            {
                "name": "HR.GetEmployeeById",
                "attributes": {"Parameters": "@EmployeeID INT, @IncludeInactive BIT = 0", "Definition": GET_EMPLOYEE_TARGET},
            },
            {
                "name": "Sales.GetProductsByCategory",
                "attributes": {
                    "Parameters": "@CategoryID INT",
                    "Definition": "CREATE PROCEDURE Sales.GetProductsByCategory @CategoryID INT AS SELECT 1",
                },
            },
        ],
        "Function": [
            {
                "name": "HR.GetFullName",
                "attributes": {
                    "Parameters": "@FirstName nvarchar(50), @LastName nvarchar(50)",
                    "ReturnType": "nvarchar(101)",
                    "FunctionType": "scalar function",
                    "Definition": GET_FULL_NAME_TARGET,
                },
            },
        ],
        "User": [
            {"name": "TestUser", "attributes": {"UserType": "sql_user", "AuthenticationType": "none"}},
            {"name": "FinanceUser", "attributes": {"UserType": "SQL_USER", "AuthenticationType": "NONE"}},
        ],
        "Role": [
            {"name": "HR_ReadOnly", "attributes": {"Owner": "dbo", "Members": "TestUser"}},
            {"name": "Sales_Full", "attributes": {"Owner": "dbo", "Members": []}},
            {"name": "Finance_ReadOnly", "attributes": {"Owner": "dbo", "Members": ["FinanceUser"]}},
        ],
        "Permission": [
            {
                "name": "HR_ReadOnly|SELECT|SCHEMA::HR",
                "attributes": {"Grantee": "HR_ReadOnly", "Permission": "SELECT", "State": "GRANT", "SecurableClass": "SCHEMA", "Securable": "HR"},
            },
            {
                "name": "Sales_Full|EXECUTE|OBJECT::Sales.GetOrdersByCustomer",
                "attributes": {"Grantee": "Sales_Full", "Permission": "EXECUTE", "State": "GRANT", "SecurableClass": "OBJECT", "Securable": "Sales.GetOrdersByCustomer"},
            },
            {
                "name": "Finance_ReadOnly|SELECT|SCHEMA::Finance",
                "attributes": {"Grantee": "Finance_ReadOnly", "Permission": "SELECT", "State": "GRANT", "SecurableClass": "SCHEMA", "Securable": "Finance"},
            },
        ],
        "QueryStore": [
            {"name": "QueryStore", "attributes": {"DesiredState": "read_write", "MaxStorageSizeMb": "100"}},
        ],
    },
    "unavailable": {"QueryStorePlan": "Query Store forced plans not readable"},
}


@pytest.fixture
def source_doc() -> Dict[str, Any]:
    return copy.deepcopy(SOURCE_DOC)


@pytest.fixture
def target_doc() -> Dict[str, Any]:
    return copy.deepcopy(TARGET_DOC)


@pytest.fixture
def source_snapshot(source_doc: Dict[str, Any]) -> Snapshot:
    return snapshot_from_document(source_doc)


@pytest.fixture
def target_snapshot(target_doc: Dict[str, Any]) -> Snapshot:
    return snapshot_from_document(target_doc)


@pytest.fixture
def diff_result(source_snapshot: Snapshot, target_snapshot: Snapshot) -> DiffResult:
    return diff_snapshots(source_snapshot, target_snapshot)


def make_snapshot(source_id: str, objects: Dict[Kind, Any], **kwargs: Any) -> Snapshot:
    """Snapshot from in-memory objects, captured at a fixed time."""
    captured_at = kwargs.pop("captured_at", dt.datetime(2024, 5, 1, 9, 0, tzinfo=dt.timezone.utc))
    return build_snapshot(source_id, captured_at, objects, **kwargs)


def obj(kind: Kind, name: str, children: Any = (), **attributes: Any) -> CatalogObject:
    return CatalogObject(kind=kind, qualified_name=name, attributes=attributes, children=tuple(children))
