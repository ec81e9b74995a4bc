from dependency_injector import containers, providers

from tianjiapi.config import Settings
from tianjiapi.database.connection import Database
from tianjiapi.database.session import get_db
from tianjiapi.services.admin_service import AdminService
from tianjiapi.services.checkin_service import CheckInService
from tianjiapi.services.coin_service import CoinService
from tianjiapi.services.completeness_service import CompletenessService
from tianjiapi.services.payment_service import PaymentService
from tianjiapi.services.subscription_service import SubscriptionService
from tianjiapi.services.upgrade_bonus_service import UpgradeBonusService
from tianjiapi.utils.timezone_utils import ServerClock


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(Settings)
    clock = providers.Singleton(ServerClock, tz_name=config.provided.TIMEZONE)


class RepositoryModule(containers.DeclarativeContainer):
    """Database handle and per-request session."""

    config = providers.DependenciesContainer()

    database = providers.Singleton(Database, settings=config.config)
    get_db = providers.Resource(get_db, database=database)


class ServiceModule(containers.DeclarativeContainer):
    """Service layer dependencies."""

    config = providers.DependenciesContainer()
    repositories = providers.DependenciesContainer()

    coin_service = providers.Factory(
        CoinService, db=repositories.get_db, settings=config.config, clock=config.clock
    )
    payment_service = providers.Factory(
        PaymentService, db=repositories.get_db, settings=config.config, clock=config.clock
    )
    checkin_service = providers.Factory(
        CheckInService, db=repositories.get_db, clock=config.clock
    )
    upgrade_bonus_service = providers.Factory(
        UpgradeBonusService, db=repositories.get_db, settings=config.config, clock=config.clock
    )
    completeness_service = providers.Factory(CompletenessService, db=repositories.get_db)
    subscription_service = providers.Factory(
        SubscriptionService, db=repositories.get_db, settings=config.config, clock=config.clock
    )
    admin_service = providers.Factory(
        AdminService, db=repositories.get_db, clock=config.clock
    )


class Container(containers.DeclarativeContainer):
    """Application container."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "tianjiapi.core.auth_middleware",
            "tianjiapi.routers.coin_router",
            "tianjiapi.routers.payment_router",
            "tianjiapi.routers.checkin_router",
            "tianjiapi.routers.profile_router",
            "tianjiapi.routers.subscription_router",
            "tianjiapi.routers.admin_router",
            "tianjiapi.routers.health_router",
        ],
    )

    config = providers.Container(ConfigModule)
    repositories = providers.Container(RepositoryModule, config=config)
    services = providers.Container(
        ServiceModule, config=config, repositories=repositories
    )
