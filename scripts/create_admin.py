# scripts/create_admin.py

import asyncio
import typer

from app.core.database import AsyncSessionLocal, create_db_and_tables
from app.domains import models as domain_models  # noqa: F401
from app.domains.usr import crud as usr_crud
from app.domains.usr import schemas as usr_schemas
from app.domains.usr.models import UserRole

cli = typer.Typer()


async def create_admin_user(user_in: usr_schemas.UserCreate, create_tables: bool = False) -> bool:
    """
    데이터베이스에 관리자 사용자를 생성합니다. 이미 존재하면 False를 반환합니다.
    구역을 지정하지 않으면 기본 구역에 배정됩니다.
    """
    if create_tables:
        await create_db_and_tables()

    async with AsyncSessionLocal() as db:
        if await usr_crud.user.is_email_taken(db, email=user_in.email):
            typer.echo(f"오류: 이미 존재하는 이메일입니다: {user_in.email}", err=True)
            return False
        if await usr_crud.user.get_by_username(db, username=user_in.username):
            typer.echo(f"오류: 이미 존재하는 사용자명입니다: {user_in.username}", err=True)
            return False
        await usr_crud.user.create(db, obj_in=user_in, created_by="create-admin")
    return True


@cli.command()
def main(
    email: str = typer.Option(..., '--email', '-e', prompt="관리자 이메일을 입력하세요"),
    username: str = typer.Option(..., '--username', '-u', prompt="관리자 사용자명(ID)을 입력하세요"),
    password: str = typer.Option(
        ..., '--password', '-p',
        prompt="관리자 비밀번호를 입력하세요",
        hide_input=True,
        confirmation_prompt=True,
        help="최소 8자 이상",
    ),
    first_name: str = typer.Option("System", '--first-name', help="관리자 이름"),
    last_name: str = typer.Option("Admin", '--last-name', help="관리자 성"),
    create_tables: bool = typer.Option(False, '--create-tables', help="테이블이 없으면 생성합니다."),
):
    """
    새로운 관리자(Admin) 계정을 생성합니다.
    """
    if len(password) < 8:
        typer.echo("오류: 비밀번호는 최소 8자 이상이어야 합니다.", err=True)
        raise typer.Abort()

    user_data = usr_schemas.UserCreate(
        email=email,
        username=username,
        password=password,
        first_name=first_name,
        last_name=last_name,
        role=UserRole.ADMIN,
    )
    if not asyncio.run(create_admin_user(user_data, create_tables=create_tables)):
        raise typer.Exit(code=1)
    typer.echo(f"관리자 계정이 생성되었습니다: {user_data.email} ({user_data.username})")


if __name__ == "__main__":
    cli()
