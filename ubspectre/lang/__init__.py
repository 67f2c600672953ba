"""Program representation and builders."""
