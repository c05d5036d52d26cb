"""
SQL schema for the virtual closet tables and storage buckets.
Run these queries in your Supabase SQL editor.
"""

CREATE_CLOTHING_ITEMS_TABLE = """
-- Clothing items uploaded into the closet
CREATE TABLE IF NOT EXISTS clothing_items (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(200) NOT NULL,
    category VARCHAR(10) NOT NULL CHECK (category IN ('top', 'bottom')),
    image_url TEXT NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_clothing_items_category_created
    ON clothing_items(category, created_at DESC);
"""

CREATE_GENERATED_OUTFITS_TABLE = """
-- Generated outfit images; one row per (top, bottom) pair for 'select',
-- one row per generation for 'nano' and 'transfer'
CREATE TABLE IF NOT EXISTS generated_outfits (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    top_id UUID REFERENCES clothing_items(id) ON DELETE CASCADE,
    bottom_id UUID REFERENCES clothing_items(id) ON DELETE CASCADE,
    generated_image_url TEXT NOT NULL,
    is_liked BOOLEAN NOT NULL DEFAULT FALSE,
    generator_source VARCHAR(10) NOT NULL DEFAULT 'select'
        CHECK (generator_source IN ('select', 'nano', 'transfer')),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    -- NULL pairs (nano/transfer) never conflict
    CONSTRAINT generated_outfits_pair_key UNIQUE (top_id, bottom_id)
);

CREATE INDEX IF NOT EXISTS idx_generated_outfits_created
    ON generated_outfits(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_generated_outfits_liked
    ON generated_outfits(is_liked);
"""

CREATE_STORAGE_BUCKETS = """
-- Public buckets for clothing photos and generated outfits
INSERT INTO storage.buckets (id, name, public)
VALUES ('clothing-images', 'clothing-images', TRUE),
       ('generated-outfits', 'generated-outfits', TRUE)
ON CONFLICT (id) DO NOTHING;
"""

CREATE_UPDATED_AT_TRIGGER = """
-- Function to update updated_at timestamp
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ language 'plpgsql';

DROP TRIGGER IF EXISTS update_clothing_items_updated_at ON clothing_items;
CREATE TRIGGER update_clothing_items_updated_at
    BEFORE UPDATE ON clothing_items
    FOR EACH ROW
    EXECUTE FUNCTION update_updated_at_column();

DROP TRIGGER IF EXISTS update_generated_outfits_updated_at ON generated_outfits;
CREATE TRIGGER update_generated_outfits_updated_at
    BEFORE UPDATE ON generated_outfits
    FOR EACH ROW
    EXECUTE FUNCTION update_updated_at_column();
"""

# Combined setup script
FULL_SCHEMA_SETUP = f"""
-- =====================================================
-- Virtual Closet Schema Setup
-- =====================================================
-- Run this in your Supabase SQL Editor
-- =====================================================

{CREATE_CLOTHING_ITEMS_TABLE}

{CREATE_GENERATED_OUTFITS_TABLE}

{CREATE_STORAGE_BUCKETS}

{CREATE_UPDATED_AT_TRIGGER}

-- =====================================================
-- Setup Complete!
-- =====================================================
"""

if __name__ == "__main__":
    print(FULL_SCHEMA_SETUP)
