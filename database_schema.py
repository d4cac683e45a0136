"""
SQL schema for the tables the Idea Bank service owns.
Run these queries in your Supabase SQL editor.
"""

CREATE_PRODUCT_ANALYSES_TABLE = """
-- Cached product image analyses, one row per product
CREATE TABLE IF NOT EXISTS product_analyses (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    product_id UUID UNIQUE NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    category VARCHAR(100) NOT NULL,
    subcategory VARCHAR(100) NOT NULL,
    materials TEXT[] DEFAULT '{}',
    colors TEXT[] DEFAULT '{}',
    style VARCHAR(100) NOT NULL,
    usage_context TEXT,
    target_demographic TEXT,
    detected_text TEXT,
    confidence INTEGER NOT NULL CHECK (confidence BETWEEN 0 AND 100),
    image_fingerprint TEXT NOT NULL,
    model_version VARCHAR(100) NOT NULL,
    analyzed_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_product_analyses_product_id ON product_analyses(product_id);

-- Enable Row Level Security
ALTER TABLE product_analyses ENABLE ROW LEVEL SECURITY;

-- Policy: Service role can do everything (for API)
CREATE POLICY product_analyses_service_role_all ON product_analyses
    FOR ALL
    USING (auth.role() = 'service_role');
"""

CREATE_RESPONSE_CACHE_TABLE = """
-- Durable tier of the response cache
CREATE TABLE IF NOT EXISTS response_cache (
    key TEXT PRIMARY KEY,
    value JSONB NOT NULL,
    fingerprint TEXT,
    expires_at TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Prefix scans for pattern invalidation (ideas:{user}:*)
CREATE INDEX IF NOT EXISTS idx_response_cache_key_prefix ON response_cache(key text_pattern_ops);
CREATE INDEX IF NOT EXISTS idx_response_cache_expires_at ON response_cache(expires_at);

ALTER TABLE response_cache ENABLE ROW LEVEL SECURITY;

CREATE POLICY response_cache_service_role_all ON response_cache
    FOR ALL
    USING (auth.role() = 'service_role');
"""

CLEANUP_EXPIRED_CACHE_FUNCTION = """
-- Function to purge expired cache rows
CREATE OR REPLACE FUNCTION cleanup_expired_response_cache()
RETURNS void AS $$
BEGIN
    DELETE FROM response_cache WHERE expires_at < NOW();
END;
$$ LANGUAGE plpgsql;
"""

ALL_SCHEMAS = [
    CREATE_PRODUCT_ANALYSES_TABLE,
    CREATE_RESPONSE_CACHE_TABLE,
    CLEANUP_EXPIRED_CACHE_FUNCTION,
]


if __name__ == "__main__":
    print("=" * 80)
    print("Idea Bank Schema")
    print("=" * 80)
    print("\nRun these SQL queries in your Supabase SQL editor:\n")
    for schema in ALL_SCHEMAS:
        print(schema)
        print("-" * 80)
