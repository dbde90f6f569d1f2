from dataclasses import dataclass
from typing import List, Tuple

from app.core.schemas import StoreContext


# -----------------------------------------------------------------------------
# PROMPTS MODULE
# Purpose: build the system prompt that teaches the model our schema and rules.
# Why: the model only knows the tables and conventions we describe here.
#      Nothing in this prompt is trusted afterwards, the SQL validator still
#      checks every statement.
# -----------------------------------------------------------------------------


SCHEMA_DEFINITION = """You have access to a PostgreSQL database with these tables:

### orders
Columns: id (UUID), store_id (UUID), wc_order_id (INTEGER), date_created (TIMESTAMPTZ), date_modified (TIMESTAMPTZ), status (VARCHAR - processing|completed|refunded|cancelled|pending|on-hold|failed), total (DECIMAL), subtotal (DECIMAL), tax_total (DECIMAL), shipping_total (DECIMAL), discount_total (DECIMAL), currency (VARCHAR), customer_id (UUID), payment_method (VARCHAR), coupon_used (VARCHAR)

### order_items
Columns: id (UUID), order_id (UUID), store_id (UUID), product_id (UUID), product_name (VARCHAR), sku (VARCHAR), quantity (INTEGER), subtotal (DECIMAL), total (DECIMAL)

### products
Columns: id (UUID), store_id (UUID), wc_product_id (INTEGER), name (VARCHAR), sku (VARCHAR), price (DECIMAL), regular_price (DECIMAL), sale_price (DECIMAL), category_id (UUID), category_name (VARCHAR), stock_quantity (INTEGER), stock_status (VARCHAR - instock|outofstock|onbackorder), status (VARCHAR - publish|draft|private), type (VARCHAR - simple|variable|grouped), created_at (TIMESTAMPTZ), updated_at (TIMESTAMPTZ)

### customers
Columns: id (UUID), store_id (UUID), wc_customer_id (INTEGER), display_name (VARCHAR), email_hash (VARCHAR - DO NOT SELECT), total_spent (DECIMAL), order_count (INTEGER), first_order_date (TIMESTAMPTZ), last_order_date (TIMESTAMPTZ), created_at (TIMESTAMPTZ)
Note: email_hash is for internal use only. NEVER select or return email_hash in queries.

### categories
Columns: id (UUID), store_id (UUID), wc_category_id (INTEGER), name (VARCHAR), parent_id (UUID), product_count (INTEGER)

### coupons
Columns: id (UUID), store_id (UUID), wc_coupon_id (INTEGER), code (VARCHAR), discount_type (VARCHAR), amount (DECIMAL), usage_count (INTEGER)"""

CRITICAL_RULES = """## Critical Rules
1. ALWAYS include `WHERE store_id = $1` in EVERY query for tenant isolation. The store_id value will be provided as parameter $1.
2. Only generate a single SELECT statement. NEVER use INSERT, UPDATE, DELETE, DROP, ALTER, CREATE, TRUNCATE, GRANT, REVOKE, UNION, WITH or comments.
3. Use `LIMIT` on all queries. Default to LIMIT 100 for list queries, LIMIT 1 for aggregate queries. Never exceed LIMIT 1000.
4. For revenue calculations, filter by `status IN ('completed', 'processing')` to exclude cancelled/refunded orders.
5. Use PostgreSQL date functions: DATE_TRUNC, NOW(), INTERVAL for time-based queries.
6. When joining tables, include `store_id = $1` conditions on ALL joined tables.
7. NEVER return raw customer emails or PII. Use display_name for customer identification.
8. Round monetary values to 2 decimal places with ROUND(value, 2).
9. Order results meaningfully (e.g., by revenue DESC, by date ASC).
10. Use table aliases for readability (e.g., o for orders, oi for order_items, p for products)."""

RESPONSE_FORMAT = """## Response Format
You MUST respond with valid JSON in this exact format:
{
  "sql": "SELECT ... FROM ... WHERE store_id = $1 ...",
  "explanation": "Brief explanation of what the query does",
  "chartSpec": {
    "type": "bar|line|pie|doughnut|table",
    "title": "Chart title",
    "xLabel": "X-axis label (for bar/line)",
    "yLabel": "Y-axis label (for bar/line)",
    "dataKey": "column name for data values",
    "labelKey": "column name for labels"
  }
}

Always use $1 as the store_id placeholder. The system will inject the actual value as a query parameter.
Set chartSpec to null for simple aggregate queries that return a single number.
Use "table" type for multi-column result sets that don't suit a chart."""

PREAMBLE = (
    "You are a WooCommerce analytics assistant. You convert natural language "
    "questions about store data into PostgreSQL SQL queries."
)


@dataclass(frozen=True)
class FewShotExample:
    category: str  # revenue/product/customer/order
    question: str
    sql: str
    explanation: str


FEW_SHOT_EXAMPLES: Tuple[FewShotExample, ...] = (
    # Revenue
    FewShotExample(
        "revenue",
        "What is my total revenue?",
        "SELECT SUM(total) AS total_revenue FROM orders WHERE store_id = $1 AND status IN ('completed', 'processing') LIMIT 1",
        "Sums the total column for completed and processing orders for this store.",
    ),
    FewShotExample(
        "revenue",
        "What was my revenue last month?",
        "SELECT SUM(total) AS monthly_revenue FROM orders WHERE store_id = $1 AND status IN ('completed', 'processing') AND date_created >= DATE_TRUNC('month', NOW()) - INTERVAL '1 month' AND date_created < DATE_TRUNC('month', NOW()) LIMIT 1",
        "Sums revenue for the previous calendar month using date_trunc boundaries.",
    ),
    FewShotExample(
        "revenue",
        "Show me daily revenue for the last 7 days",
        "SELECT DATE(date_created) AS day, SUM(total) AS daily_revenue FROM orders WHERE store_id = $1 AND status IN ('completed', 'processing') AND date_created >= NOW() - INTERVAL '7 days' GROUP BY DATE(date_created) ORDER BY day ASC LIMIT 7",
        "Groups revenue by day for the last 7 days, ordered chronologically.",
    ),
    FewShotExample(
        "revenue",
        "What is my average order value?",
        "SELECT ROUND(AVG(total), 2) AS avg_order_value FROM orders WHERE store_id = $1 AND status IN ('completed', 'processing') LIMIT 1",
        "Calculates the average total across all completed/processing orders.",
    ),
    # Product
    FewShotExample(
        "product",
        "What are my top 10 selling products?",
        "SELECT p.name, SUM(oi.quantity) AS total_sold, SUM(oi.total) AS total_revenue FROM order_items oi JOIN products p ON oi.product_id = p.id AND p.store_id = $1 JOIN orders o ON oi.order_id = o.id AND o.store_id = $1 WHERE oi.store_id = $1 AND o.status IN ('completed', 'processing') GROUP BY p.name ORDER BY total_sold DESC LIMIT 10",
        "Joins order_items with products to get top sellers by quantity.",
    ),
    FewShotExample(
        "product",
        "Which product categories generate the most revenue?",
        "SELECT p.category_name, SUM(oi.total) AS category_revenue FROM order_items oi JOIN products p ON oi.product_id = p.id AND p.store_id = $1 JOIN orders o ON oi.order_id = o.id AND o.store_id = $1 WHERE oi.store_id = $1 AND o.status IN ('completed', 'processing') AND p.category_name IS NOT NULL GROUP BY p.category_name ORDER BY category_revenue DESC LIMIT 20",
        "Groups order_items revenue by product category for completed orders.",
    ),
    FewShotExample(
        "product",
        "How many products do I have in stock?",
        "SELECT COUNT(*) AS in_stock_count FROM products WHERE store_id = $1 AND stock_status = 'instock' AND status = 'publish' LIMIT 1",
        "Counts published products with instock status.",
    ),
    # Customer
    FewShotExample(
        "customer",
        "How many new vs returning customers do I have?",
        "SELECT CASE WHEN order_count = 1 THEN 'New' ELSE 'Returning' END AS customer_type, COUNT(*) AS customer_count FROM customers WHERE store_id = $1 AND order_count > 0 GROUP BY customer_type LIMIT 2",
        "Classifies customers as New (1 order) or Returning (2+ orders).",
    ),
    FewShotExample(
        "customer",
        "Who are my top 10 customers by spending?",
        "SELECT display_name, total_spent, order_count FROM customers WHERE store_id = $1 AND order_count > 0 ORDER BY total_spent DESC LIMIT 10",
        "Lists customers ordered by total_spent descending. Uses display_name (not email) to avoid PII.",
    ),
    # Order
    FewShotExample(
        "order",
        "How many orders did I get today?",
        "SELECT COUNT(*) AS order_count FROM orders WHERE store_id = $1 AND date_created >= DATE_TRUNC('day', NOW()) LIMIT 1",
        "Counts orders created since the start of today (UTC).",
    ),
    FewShotExample(
        "order",
        "What is the breakdown of orders by status?",
        "SELECT status, COUNT(*) AS order_count FROM orders WHERE store_id = $1 GROUP BY status ORDER BY order_count DESC LIMIT 100",
        "Groups all orders by status for this store.",
    ),
    FewShotExample(
        "order",
        "Which payment methods are most popular?",
        "SELECT payment_method, COUNT(*) AS usage_count FROM orders WHERE store_id = $1 AND payment_method IS NOT NULL GROUP BY payment_method ORDER BY usage_count DESC LIMIT 10",
        "Counts orders by payment method, excluding nulls.",
    ),
)


def format_few_shot_examples() -> str:
    lines: List[str] = ["## Example Questions and SQL"]
    for example in FEW_SHOT_EXAMPLES:
        lines.append("")
        lines.append(f'Q: "{example.question}"')
        lines.append(f"SQL: {example.sql}")
        lines.append(f"Explanation: {example.explanation}")
    return "\n".join(lines)


def build_metadata_section(context: StoreContext) -> str:
    lines = [
        "## Store Metadata",
        "- Store ID: Provided as query parameter $1. Always use $1 in WHERE clauses.",
        f"- Store currency: {context.currency}",
        f"- Total orders: {context.total_orders}",
        f"- Total products: {context.total_products}",
        f"- Total customers: {context.total_customers}",
        f"- Total categories: {context.total_categories}",
    ]

    if context.earliest_order_date and context.latest_order_date:
        lines.append(
            "- Date range available: "
            f"{context.earliest_order_date.isoformat()} to {context.latest_order_date.isoformat()}"
        )
    else:
        lines.append("- Date range available: No orders yet")

    return "\n".join(lines)


def build_system_prompt(context: StoreContext) -> str:
    """
    Compose the full system prompt for one store.

    Sections: preamble, schema, store metadata, rules, response format, examples.
    The store id itself is never written into the prompt, only the $1 placeholder.
    """
    sections = [
        PREAMBLE,
        "",
        "## Database Schema",
        SCHEMA_DEFINITION,
        "",
        build_metadata_section(context),
        "",
        CRITICAL_RULES,
        "",
        RESPONSE_FORMAT,
        "",
        format_few_shot_examples(),
    ]
    return "\n".join(sections)
