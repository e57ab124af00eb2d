"""Built-in catalog of popular Go modules, searchable without network access."""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class CatalogEntry:
    path: str
    description: str
    category: str


POPULAR_MODULES: Tuple[CatalogEntry, ...] = (
    # Web
    CatalogEntry("github.com/gin-gonic/gin", "HTTP web framework", "web"),
    CatalogEntry("github.com/labstack/echo/v4", "High performance minimalist web framework", "web"),
    CatalogEntry("github.com/gofiber/fiber/v2", "Express inspired web framework", "web"),
    CatalogEntry("github.com/gorilla/mux", "HTTP request router and dispatcher", "web"),
    CatalogEntry("github.com/go-chi/chi/v5", "Lightweight composable HTTP router", "web"),
    CatalogEntry("github.com/gorilla/websocket", "WebSocket implementation", "web"),
    # Database
    CatalogEntry("gorm.io/gorm", "ORM library", "database"),
    CatalogEntry("github.com/jmoiron/sqlx", "Extensions to database/sql", "database"),
    CatalogEntry("github.com/go-sql-driver/mysql", "MySQL driver for database/sql", "database"),
    CatalogEntry("github.com/lib/pq", "PostgreSQL driver for database/sql", "database"),
    CatalogEntry("github.com/jackc/pgx/v5", "PostgreSQL driver and toolkit", "database"),
    CatalogEntry("github.com/redis/go-redis/v9", "Redis client", "database"),
    CatalogEntry("go.mongodb.org/mongo-driver", "MongoDB driver", "database"),
    # CLI / config
    CatalogEntry("github.com/spf13/cobra", "Library for building CLI applications", "cli"),
    CatalogEntry("github.com/spf13/viper", "Configuration with fangs", "config"),
    CatalogEntry("github.com/urfave/cli/v2", "Simple, fast CLI package", "cli"),
    CatalogEntry("gopkg.in/yaml.v3", "YAML support", "config"),
    # Logging
    CatalogEntry("go.uber.org/zap", "Fast structured logging", "logging"),
    CatalogEntry("github.com/sirupsen/logrus", "Structured logger", "logging"),
    CatalogEntry("github.com/rs/zerolog", "Zero allocation JSON logger", "logging"),
    # Testing
    CatalogEntry("github.com/stretchr/testify", "Assertions and mocks for tests", "testing"),
    CatalogEntry("github.com/golang/mock", "Mocking framework", "testing"),
    # RPC / serialization
    CatalogEntry("google.golang.org/grpc", "gRPC for Go", "rpc"),
    CatalogEntry("google.golang.org/protobuf", "Protocol buffers runtime", "rpc"),
    # Utilities
    CatalogEntry("golang.org/x/sync", "Additional concurrency primitives", "utility"),
    CatalogEntry("golang.org/x/text", "Text processing and encodings", "utility"),
    CatalogEntry("github.com/google/uuid", "UUID generation", "utility"),
    CatalogEntry("github.com/pkg/errors", "Error handling primitives", "utility"),
    # Tools
    CatalogEntry("golang.org/x/tools/gopls", "Go language server", "tools"),
    CatalogEntry("github.com/go-delve/delve/cmd/dlv", "Go debugger", "tools"),
    CatalogEntry("github.com/golangci/golangci-lint/cmd/golangci-lint", "Linters runner", "tools"),
)

_BY_PATH = {entry.path: entry for entry in POPULAR_MODULES}


def lookup(path: str) -> Optional[CatalogEntry]:
    return _BY_PATH.get(path)
